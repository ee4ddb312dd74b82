"""
Score postprocessing: softmax, argmax and top-k.
"""

from __future__ import annotations

import numpy as np


def softmax(scores) -> np.ndarray:
    """
    Numerically stable softmax.

    The maximum score is subtracted before exponentiating, so large scores
    cannot overflow and the largest term is always exp(0) = 1.

    Args:
        scores: 1-D sequence of raw class scores

    Returns:
        float32 array of the same length summing to 1
    """
    x = np.asarray(scores, dtype=np.float32).reshape(-1)
    if x.size == 0:
        raise ValueError("softmax of an empty score vector")

    exps = np.exp(x - x.max())
    return (exps / exps.sum()).astype(np.float32)


def argmax(probs) -> int:
    """
    Index of the maximum value. Ties resolve to the lowest index.

    Follows a strict-greater scan seeded with element 0: NaN never compares
    greater, so NaN entries are skipped, and a leading NaN wins by default.
    """
    x = np.asarray(probs).reshape(-1)
    if x.size == 0:
        raise ValueError("argmax of an empty vector")
    nan = np.isnan(x)
    if nan[0]:
        return 0
    # np.argmax returns the first occurrence of the maximum
    return int(np.argmax(np.where(nan, -np.inf, x)))


def top_k(probs, k: int = 5) -> list[tuple[int, float]]:
    """
    The ``k`` largest entries as (index, value), highest first.

    Equal values keep ascending index order.
    """
    x = np.asarray(probs).reshape(-1)
    k = max(0, min(k, x.size))
    # Stable sort on the negated values keeps lower indices first among ties
    order = np.argsort(-x, kind="stable")[:k]
    return [(int(i), float(x[i])) for i in order]
