from __future__ import annotations

from typing import Any

from boost_aid.normalization import cell_text
from boost_aid.shared import FALLBACK_GIFT_AID_KEYS, FALLBACK_TAX_ELIGIBLE_KEY, EligibilityConfig

AFFIRMATIVE_VALUES = {"yes", "y", "true"}


def is_eligible(record: dict[str, Any], config: EligibilityConfig | None) -> bool:
    """Decide whether a record may be claimed for Gift Aid.

    With a configured column the trimmed cell must be one of the selected
    values exactly. Without one, well-known Gift Aid and tax flags are read
    heuristically.
    """
    if config is not None and config.column:
        value = cell_text(record.get(config.column)).strip()
        return value in config.values_to_keep

    gift_aid = ""
    for key in FALLBACK_GIFT_AID_KEYS:
        gift_aid = cell_text(record.get(key)).strip().lower()
        if gift_aid:
            break
    tax_eligible = cell_text(record.get(FALLBACK_TAX_ELIGIBLE_KEY)).strip().lower()

    return (
        "tax effective" in gift_aid
        or gift_aid in AFFIRMATIVE_VALUES
        or tax_eligible in AFFIRMATIVE_VALUES
    )
