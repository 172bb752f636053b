"""消息内容相似度。"""

from difflib import SequenceMatcher


def calculate_similarity(text1: str, text2: str) -> float:
    """返回 [0, 1] 区间的对称相似度。

    完全相同为 1.0，任一方为空（另一方非空）为 0.0；
    其余情况取 SequenceMatcher 两个方向 ratio 的较大值。
    """
    if text1 == text2:
        return 1.0
    if not text1 or not text2:
        return 0.0
    forward = SequenceMatcher(None, text1, text2, autojunk=False).ratio()
    backward = SequenceMatcher(None, text2, text1, autojunk=False).ratio()
    return max(forward, backward)
