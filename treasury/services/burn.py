"""Burn scheduling.

The accumulation threshold is the only throttle: once it is met the whole
accumulated amount is burned on that tick.
"""

from dataclasses import dataclass


@dataclass
class BurnDecision:
    should_burn: bool
    token_amount: int = 0
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "should_burn": self.should_burn,
            "token_amount": self.token_amount,
            "reason": self.reason,
        }


def evaluate_burn(tokens_accumulated: int, min_tokens_to_accumulate: int) -> BurnDecision:
    if tokens_accumulated < min_tokens_to_accumulate:
        return BurnDecision(
            should_burn=False,
            reason=f"Insufficient tokens: {tokens_accumulated:,} < {min_tokens_to_accumulate:,}",
        )
    return BurnDecision(
        should_burn=True,
        token_amount=tokens_accumulated,
        reason=f"Accumulated {tokens_accumulated:,} tokens - auto burning",
    )
