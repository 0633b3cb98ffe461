# Overview: Cost reconciler; weighted-average unit cost on receive and its reversal on undo.

"""
Weighted-average cost (WAC).

Forward (RECEIVING):
    new_cost = (prev_qty * prev_cost + recv_qty * recv_cost) / (prev_qty + recv_qty)
recv_qty is always > 0, so the denominator never reaches zero.

Reverse (undo of RECEIVING), solving the forward formula for prev_cost:
    reversed = (cur_qty * cur_cost - recv_qty * recv_cost) / (cur_qty - recv_qty)

Reverse policy:
- remaining quantity (cur_qty - recv_qty, floored at 0) of zero -> cost 0
- a negative or non-finite result (quantity or cost edited out-of-band
  between receive and undo) -> the previousCost recorded on the operation
  line. Undo stays available; it does not fail on drifted data.

Costs are not rounded: undoing a receive restores the previous cost to
within float precision.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class CostReversal:
    quantity: float
    cost: float
    used_fallback: bool = False


def weighted_average_cost(
    previous_qty: float,
    previous_cost: float,
    received_qty: float,
    received_cost: float,
) -> float:
    total_qty = previous_qty + received_qty
    if total_qty <= 0:
        return received_cost
    return (previous_qty * previous_cost + received_qty * received_cost) / total_qty


def reverse_weighted_average_cost(
    current_qty: float,
    current_cost: float,
    received_qty: float,
    received_cost: float,
    previous_cost: float,
) -> CostReversal:
    remaining = max(0, current_qty - received_qty)
    if remaining == 0:
        return CostReversal(quantity=0, cost=0)

    try:
        reversed_cost = (current_qty * current_cost - received_qty * received_cost) / (current_qty - received_qty)
    except ZeroDivisionError:
        reversed_cost = math.nan

    if not math.isfinite(reversed_cost) or reversed_cost < 0:
        return CostReversal(quantity=remaining, cost=previous_cost, used_fallback=True)

    return CostReversal(quantity=remaining, cost=reversed_cost)
