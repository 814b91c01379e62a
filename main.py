"""
页面置换模拟器 - 主程序入口

对同一引用串比较三种页面置换算法：
- FIFO (先进先出)
- LRU (最近最少使用)
- Optimal (最佳置换，Belady MIN)

使用方法:
    uv run main.py
    或
    python main.py
"""
from memory_ui import MemSimApp


def main():
    app = MemSimApp()
    app.run()


if __name__ == "__main__":
    main()
