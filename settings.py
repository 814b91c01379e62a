"""模拟器默认配置"""
import os
from pathlib import Path

# 默认引用串与帧数
DEFAULT_REFS = "7 0 1 2 0 3 0 4 2 3 0 3 2"
DEFAULT_FRAMES = 3

# 用户输入帧数的允许范围
MIN_FRAMES = 1
MAX_FRAMES = 50

# Belady 异常演示序列
BELADY_REFS = [1, 2, 3, 4, 1, 2, 5, 1, 2, 3, 4, 5]

# 随机序列参数：长度 12..21，页号 0..9，帧数 2..7
RANDOM_LENGTH = (12, 21)
RANDOM_PAGE_RANGE = 10
RANDOM_FRAMES = (2, 7)

# 逐步回放间隔（秒）
PLAYBACK_INTERVAL = 0.4

# 上次输入的保存位置
STATE_PATH = Path(os.environ.get("PAGING_SIM_STATE", Path.home() / ".paging_sim.json"))
