import math
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import Footer, Static, Button, RichLog, Label, Input, Checkbox, DataTable
from textual.reactive import reactive
from textual_plotext import PlotextPlot
from textual.events import Blur, Click

import settings
from memory_input import InputStore, clamp_frames, parse_refs, random_sequence
from memory_model import PageManager, Policy, SimulationError


def policy_tag(policy):
    """组件 id 使用的算法标识：fifo / lru / opt"""
    return policy.name.lower()


class SmartInput(Input):
    """智能输入框：失去焦点时自动提交"""
    def on_blur(self, event: Blur) -> None:
        self.post_message(self.Submitted(self, self.value))


class AlgoStatCard(Static):
    """
    算法统计卡片组件

    显示单个算法的缺页数、命中数、缺页率和当前状态
    """
    def __init__(self, policy):
        super().__init__(id=f"card-{policy_tag(policy)}")
        self.policy = policy

    def compose(self) -> ComposeResult:
        yield Label(self.policy.value, classes="card-title")
        yield Label("0.0%", classes="card-rate")
        yield Label("F: 0  H: 0", classes="card-count")
        yield Label("--", classes="card-status")

    def update_data(self, faults: int, hits: int, fault_rate: float, status: str):
        """更新卡片数据"""
        self.query_one(".card-rate").update(f"{fault_rate:.1f}%")
        self.query_one(".card-count").update(f"F: {faults}  H: {hits}")

        status_lbl = self.query_one(".card-status")
        status_lbl.update(status)
        status_lbl.classes = "card-status status-miss" if status == "Fault" else "card-status status-hit"

    def reset(self, enabled: bool = True):
        """重置显示；未选中的算法显示 OFF"""
        self.update_data(0, 0, 0.0, "--" if enabled else "OFF")
        self.set_class(not enabled, "card-off")

    def set_active(self, is_active: bool):
        """设置是否为当前查看的算法"""
        self.set_class(is_active, "card-active")


class MemBlock(Static):
    """
    内存块组件

    根据回放数据自我渲染样式和文字
    """
    frame_idx = reactive("0")
    page_num = reactive("--")
    meta_info = reactive("")

    def compose(self) -> ComposeResult:
        yield Label(f"#{self.frame_idx}", classes="mem-idx")
        yield Label(self.page_num, classes="mem-page")
        yield Label(self.meta_info, classes="mem-meta")

    def update_state(self, idx: int, page, is_target: bool, data=None):
        """
        根据逻辑层数据更新视图

        Args:
            idx: 内存帧号
            page: 帧中的页面（None 表示空闲）
            is_target: 是否为本步命中或装入的帧
            data: 查看算法本步的结果（status / swapped）
        """
        self.query_one(".mem-idx").update(f"#{idx}")
        self.classes = ""

        if page is None:
            self.query_one(".mem-page").update("--")
            self.query_one(".mem-meta").update("EMPTY")
            self.add_class("block-empty")
            return

        self.query_one(".mem-page").update(str(page))
        self.add_class("block-active")
        if not is_target or data is None:
            self.query_one(".mem-meta").update("")
        elif data["status"] == "Hit":
            self.query_one(".mem-meta").update("HIT")
            self.add_class("block-hit")
        elif data["swapped"] is not None:
            self.query_one(".mem-meta").update(f"OUT {data['swapped']}")
            self.add_class("victim-frame")
        else:
            self.query_one(".mem-meta").update("LOAD")
            self.add_class("block-load")


class MemSimApp(App):
    """页面置换模拟器 TUI 应用"""
    CSS_PATH = "styles.tcss"

    BINDINGS = [
        ("space", "toggle", "Start/Pause"),
        ("r", "reset", "Reset"),
        ("ctrl+c", "quit", "Quit"),
        ("q", "quit", "Quit")
    ]

    def __init__(self, store=None):
        super().__init__()
        self.store = store or InputStore()
        self.current_blocks = settings.DEFAULT_FRAMES
        self.logic = PageManager(parse_refs(settings.DEFAULT_REFS), self.current_blocks)
        self.timer = None
        self.sim_running = False
        self.mem_block_refs = []

    def compose(self) -> ComposeResult:
        yield Label("Page Replacement Simulator", classes="app-title")

        with Container(id="stats-panel"):
            for policy in Policy:
                yield AlgoStatCard(policy)

        with Container(id="controls-panel"):
            with Container(id="setting-row"):
                yield Label("Refs:")
                yield Input(placeholder="e.g. 7 0 1 2 0 3 0 4 2 3 0 3 2", id="input-refs")
                yield Label(f"Frames ({settings.MIN_FRAMES}-{settings.MAX_FRAMES}):", classes="frames-label")
                yield SmartInput(placeholder=str(settings.DEFAULT_FRAMES), type="integer", id="input-frames")

            with Container(id="algo-checks"):
                for policy in Policy:
                    yield Checkbox(policy.value, True, id=f"chk-{policy_tag(policy)}")

            with Container(id="algo-buttons"):
                for policy in Policy:
                    yield Button(policy.name, id=f"btn-{policy_tag(policy)}", variant="default")

            with Container(classes="action-row"):
                yield Button("RUN", id="btn-run", variant="primary")
                yield Button("START", id="btn-start", variant="success")
                yield Button("RANDOM", id="btn-random", variant="default")
                yield Button("CLEAR", id="btn-clear", variant="default")
                yield Button("BELADY", id="btn-belady", variant="error")

        with Container(id="log-panel"):
            with Container(id="chart-container"):
                yield PlotextPlot(id="fault-chart-plot")
            yield RichLog(id="sys-log", markup=True, wrap=True)

        yield DataTable(id="steps-table", zebra_stripes=True)
        yield Container(id="memory-panel")
        yield Footer()

    async def on_mount(self):
        self.query_one("#sys-log").write("System Initialized.")
        refs_text, frames = self.store.load()
        self.query_one("#input-refs", Input).value = refs_text
        self.query_one("#input-frames", Input).value = str(frames)
        self.init_chart()
        await self.run_simulation()

    def init_chart(self):
        plt = self.query_one("#fault-chart-plot", PlotextPlot).plt
        plt.title("Page Faults")
        plt.theme("pro")
        plt.xlabel("")
        plt.ylabel("Faults")

    def on_click(self, event: Click) -> None:
        """全局点击处理：点击非交互区时让帧数输入框失焦"""
        focused = self.focused
        if focused and focused.id == "input-frames":
            if event.widget != focused and not event.widget.can_focus:
                self.set_focus(None)

    async def on_input_submitted(self, event: Input.Submitted):
        """引用串回车即运行；帧数变化后重新运行"""
        if event.input.id == "input-refs":
            await self.run_simulation()
        elif event.input.id == "input-frames":
            if not event.value:
                return
            frames = clamp_frames(event.value)
            if str(frames) != event.value:
                self.query_one("#sys-log").write(
                    f"[red]Error: Frames must be {settings.MIN_FRAMES}-{settings.MAX_FRAMES}, using {frames}[/]"
                )
                event.input.value = str(frames)
            if frames != self.current_blocks:
                await self.run_simulation()

    async def on_button_pressed(self, event):
        """处理按钮点击事件"""
        bid = event.button.id
        if bid == "btn-run":
            await self.run_simulation()
        elif bid == "btn-start":
            self.action_toggle()
        elif bid == "btn-random":
            self.fill_random_sequence()
        elif bid == "btn-clear":
            self.clear_inputs()
        elif bid == "btn-belady":
            await self.start_belady_demo()
        elif bid.startswith("btn-"):
            self.set_view_algorithm(Policy[bid.replace("btn-", "").upper()])

    def selected_policies(self):
        return [p for p in Policy if self.query_one(f"#chk-{policy_tag(p)}", Checkbox).value]

    async def run_simulation(self):
        """解析输入，运行所选算法并刷新结果"""
        self._stop_simulation()
        log = self.query_one("#sys-log")
        refs_text = self.query_one("#input-refs", Input).value
        frames_input = self.query_one("#input-frames", Input)
        frames = clamp_frames(frames_input.value or settings.DEFAULT_FRAMES)
        frames_input.value = str(frames)

        refs = parse_refs(refs_text)
        if not refs:
            log.write("[red]Error: enter a reference string (numbers separated by spaces/commas)[/]")
            self.clear_results()
            return

        logic = PageManager(refs, frames, self.selected_policies())
        if refs == settings.BELADY_REFS:
            logic.mode = "BELADY"
        try:
            logic.run()
        except SimulationError as exc:
            log.write(f"[red]Error: {exc}[/]")
            self.clear_results()
            return

        self.logic = logic
        log.write(f"Parsed {len(refs)} references • Frames = {frames}")
        for result in logic.results.values():
            log.write(f"  {result.policy.value:<8} faults={result.faults:<3} hits={result.hits}")
        self.store.save(refs_text, frames)

        await self.change_memory_size(frames)
        self.show_results()
        self.set_view_algorithm(logic.view_algo)

    async def change_memory_size(self, size):
        """按帧数重建内存块"""
        self.current_blocks = size
        panel = self.query_one("#memory-panel")
        await panel.remove_children()
        self.mem_block_refs = [MemBlock() for _ in range(size)]
        await panel.mount(*self.mem_block_refs)
        for i, block in enumerate(self.mem_block_refs):
            block.update_state(i, None, False)
        self.update_memory_grid_layout(size)

    def update_memory_grid_layout(self, count):
        cols = 2 if count <= 4 else (3 if count <= 6 else (4 if count <= 16 else 8))
        rows = math.ceil(count / cols)
        panel = self.query_one("#memory-panel")
        panel.styles.grid_size_columns = cols
        panel.styles.grid_size_rows = rows

    def show_results(self):
        """显示各算法的最终统计、柱状图和逐步表格"""
        for policy in Policy:
            card = self.query_one(f"#card-{policy_tag(policy)}", AlgoStatCard)
            result = self.logic.results.get(policy)
            if result is None:
                card.reset(enabled=False)
            else:
                card.reset()
                card.update_data(result.faults, result.hits, result.fault_rate, "--")
        self.refresh_chart()
        self.refresh_table()

    def clear_results(self):
        self.logic.results = {}
        self.logic.reset()
        for policy in Policy:
            self.query_one(f"#card-{policy_tag(policy)}", AlgoStatCard).reset()
        self.refresh_chart()
        self.query_one("#steps-table", DataTable).clear(columns=True)

    def refresh_chart(self):
        """刷新缺页数柱状图"""
        plot_widget = self.query_one("#fault-chart-plot", PlotextPlot)
        plt = plot_widget.plt
        plt.clear_data()

        results = self.logic.results
        if results:
            names = [policy.value for policy in results]
            faults = [result.faults for result in results.values()]
            plt.bar(names, faults, color="red")

        plot_widget.refresh()

    def refresh_table(self):
        """查看算法的逐步表格：时间、引用、各帧内容、命中/缺页"""
        table = self.query_one("#steps-table", DataTable)
        table.clear(columns=True)
        result = self.logic.results.get(self.logic.view_algo)
        if result is None:
            return

        steps = result.steps
        table.add_columns("#/t", *[str(s.time) for s in steps])
        table.add_row("Ref", *[str(s.ref) for s in steps])
        for f in range(result.capacity):
            cells = []
            prev = None
            for s in steps:
                val = s.frames[f]
                # 本帧内容发生变化时加粗
                cells.append(Text("" if val is None else str(val), style="bold" if val != prev else ""))
                prev = val
            table.add_row(f"Frame {f + 1}", *cells)
        table.add_row("Hit/Fault", *[
            Text("H", style="bold green") if s.hit else Text("F", style="bold red") for s in steps
        ])

    def fill_random_sequence(self):
        self._stop_simulation()
        refs, frames = random_sequence()
        self.query_one("#input-refs", Input).value = " ".join(str(p) for p in refs)
        self.query_one("#input-frames", Input).value = str(frames)
        self.query_one("#sys-log").write("Random sequence generated • press RUN")

    def clear_inputs(self):
        self._stop_simulation()
        self.query_one("#input-refs", Input).value = ""
        self.query_one("#input-frames", Input).value = str(settings.DEFAULT_FRAMES)
        self.clear_results()
        self.query_one("#sys-log").write("Cleared. Paste or generate a sequence, set frames, then RUN.")

    async def start_belady_demo(self):
        self._stop_simulation()
        self.logic.load_belady_sequence()
        self.query_one("#input-refs", Input).value = " ".join(str(p) for p in self.logic.refs)

        log = self.query_one("#sys-log")
        log.clear()
        log.write("[bold magenta]=== Belady's Anomaly Demo ===[/]")
        log.write("Seq: " + ",".join(str(p) for p in settings.BELADY_REFS))
        log.write("1. Set Frames to 3 -> Run -> Check FIFO Faults (Expected: 9)")
        log.write("2. Set Frames to 4 -> Run -> Check FIFO Faults (Expected: 10)")
        await self.run_simulation()

    def set_view_algorithm(self, policy):
        if policy not in self.logic.results:
            self.query_one("#sys-log").write(f"[yellow]{policy.value} is not selected[/]")
            return
        self.logic.view_algo = policy
        self.query_one("#sys-log").write(f"View: {policy.value}")

        for p in Policy:
            btn = self.query_one(f"#btn-{policy_tag(p)}", Button)
            btn.variant = "primary" if p is policy else "default"
            self.query_one(f"#card-{policy_tag(p)}", AlgoStatCard).set_active(p is policy)
        self.refresh_table()

    def action_toggle(self):
        if not self.logic.results:
            self.query_one("#sys-log").write("[red]Error: nothing to play, press RUN first[/]")
            return
        if self.logic.finished:
            self.restart_playback()

        self.sim_running = not self.sim_running
        btn = self.query_one("#btn-start")
        if self.sim_running:
            btn.label = "PAUSE"
            btn.add_class("pause")
            self.timer = self.set_interval(settings.PLAYBACK_INTERVAL, self.step_simulation)
        else:
            btn.label = "RESUME"
            btn.remove_class("pause")
            if self.timer:
                self.timer.stop()

    def action_reset(self):
        """响应 'r' 键重置回放"""
        self._stop_simulation()
        self.restart_playback()
        self.query_one("#sys-log").write("[bold red]Playback Reset.[/]")

    def restart_playback(self):
        self.logic.reset()
        for policy in self.logic.results:
            self.query_one(f"#card-{policy_tag(policy)}", AlgoStatCard).reset()
        for i, block in enumerate(self.mem_block_refs):
            block.update_state(i, None, False)

    def _stop_simulation(self):
        """停止回放并重置按钮状态"""
        self.sim_running = False
        if self.timer:
            self.timer.stop()
            self.timer = None
        btn = self.query_one("#btn-start")
        btn.label = "START"
        btn.remove_class("pause")

    def step_simulation(self):
        """回放一个时刻并更新UI"""
        res = self.logic.step()
        if res is None:
            self._stop_simulation()
            self.query_one("#btn-start").label = "FINISHED"

            # Belady 异常结果检查
            if self.logic.mode == "BELADY" and Policy.FIFO in self.logic.results:
                misses = self.logic.results[Policy.FIFO].faults
                self.query_one("#sys-log").write(f"[magenta]Result: {self.current_blocks} Frames -> {misses} FIFO Faults[/]")
            return

        # 1. 更新统计卡片
        for policy, data in res["results"].items():
            card = self.query_one(f"#card-{policy_tag(policy)}", AlgoStatCard)
            hits = res["current_step"] - data["miss_count"]
            card.update_data(data["miss_count"], hits, data["miss_rate"], data["status"])
        view_data = res["results"][res["view_algo"]]

        # 2. 更新内存块
        for i, block in enumerate(self.mem_block_refs):
            block.update_state(i, res["memory"][i], i == res["slot"], view_data)

        # 3. 打印日志
        status_str = "[red]FAULT[/]" if view_data["status"] == "Fault" else "[green]HIT  [/]"
        msg = f"t={res['time']:>3} │ {status_str} │ [cyan]Ref:{res['page']:>3}[/] → [green]Fr:{res['slot']}[/]"
        if view_data["swapped"] is not None:
            msg += f" │ Out: Pg{view_data['swapped']:>3}"
        self.query_one("#sys-log").write(msg)
