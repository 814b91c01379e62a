import json
import random
import re
from pathlib import Path

import settings

_TOKEN = re.compile(r"-?\d+")


def parse_refs(text):
    """从文本中提取整数页号，保持顺序，非数字内容直接忽略"""
    return [int(tok) for tok in _TOKEN.findall(text or "")]


def clamp_frames(value):
    """把用户输入的帧数限制在 MIN_FRAMES..MAX_FRAMES 之间"""
    try:
        frames = int(str(value).strip())
    except ValueError:
        return settings.MIN_FRAMES
    return max(settings.MIN_FRAMES, min(settings.MAX_FRAMES, frames))


def random_sequence(rng=None):
    """生成演示用的随机引用串和帧数"""
    rng = rng or random.Random()
    length = rng.randint(*settings.RANDOM_LENGTH)
    refs = [rng.randrange(settings.RANDOM_PAGE_RANGE) for _ in range(length)]
    frames = rng.randint(*settings.RANDOM_FRAMES)
    return refs, frames


class InputStore:
    """保存上一次运行的引用串和帧数（JSON 文件）"""

    def __init__(self, path=None):
        self.path = Path(path) if path is not None else settings.STATE_PATH

    def load(self):
        """返回 (refs_text, frames)；文件不存在或已损坏时返回默认值"""
        defaults = (settings.DEFAULT_REFS, settings.DEFAULT_FRAMES)
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return defaults
        if not isinstance(data, dict):
            return defaults

        refs_text = data.get("refs")
        if not isinstance(refs_text, str) or not refs_text.strip():
            refs_text = settings.DEFAULT_REFS
        return refs_text, clamp_frames(data.get("frames", settings.DEFAULT_FRAMES))

    def save(self, refs_text, frames):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"refs": refs_text, "frames": clamp_frames(frames)}
        self.path.write_text(json.dumps(payload), encoding="utf-8")
