# Overview: Rupee round-off for invoice totals.

from __future__ import annotations

from dataclasses import dataclass

PAISE_PER_RUPEE = 100


@dataclass(frozen=True)
class RoundOff:
    rounded_amount: int
    adjustment: int

    def to_dict(self) -> dict:
        return {
            "rounded_amount_paise": self.rounded_amount,
            "adjustment_paise": self.adjustment,
        }


def round_to_whole_unit(amount: int) -> RoundOff:
    """
    Round a paise amount to the nearest whole rupee, half-up.

    adjustment = rounded_amount - amount and is printed as its own signed
    line so the invoice components add up to the printed total.
    A 50 paise remainder rounds up (adjustment +50); otherwise |adjustment| < 50.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError("amount must be an integer number of paise")

    remainder = amount % PAISE_PER_RUPEE
    # Half-up tie: exactly 50 paise rounds up, the one case where adjustment reaches +50
    if remainder >= PAISE_PER_RUPEE // 2:
        rounded = amount - remainder + PAISE_PER_RUPEE
    else:
        rounded = amount - remainder
    return RoundOff(rounded_amount=rounded, adjustment=rounded - amount)
