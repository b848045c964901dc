"""
Catalogue de prix (montants en cents) injecté dans la composition du checkout.

- state_base / state_filing: frais de constitution et frais de dépôt par État
- one_time: add-ons facturés une fois (EIN, copie certifiée)
- recurring: add-ons récurrents -> Price ID Stripe + intervalle
"""
import json
import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator

from llc_backend import config
from llc_backend.errors import UnsupportedRegion

logger = logging.getLogger(__name__)

# ---------- Tables par défaut (cents) ----------
STATE_BASE: Dict[str, int] = {
    "FL": 400, "DE": 400, "WY": 400, "CO": 400, "NY": 400,
}
STATE_FILING_FEES: Dict[str, int] = {
    "FL": 12500, "DE": 11000, "WY": 10000, "CO": 5000, "NY": 20000,
}
ONE_TIME: Dict[str, int] = {
    "ein": 4900,
    "certified_copy": 3900,
}


class Interval(str, Enum):
    YEAR = "year"
    MONTH = "month"


class RecurringPrice(BaseModel):
    price_id: Optional[str] = None
    interval: Interval

    @property
    def configured(self) -> bool:
        return bool(self.price_id)


class PricingCatalog(BaseModel):
    currency: str = "usd"
    state_base: Dict[str, int]
    state_filing: Dict[str, int]
    one_time: Dict[str, int] = Field(default_factory=lambda: dict(ONE_TIME))
    # Surcharge optionnelle du prix de la copie certifiée par État
    certified_copy_by_state: Dict[str, int] = Field(default_factory=dict)
    recurring: Dict[str, RecurringPrice] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _states_fully_priced(self):
        base, filing = set(self.state_base), set(self.state_filing)
        if base != filing:
            missing = sorted(base ^ filing)
            raise ValueError(f"Frais incomplets pour les États: {', '.join(missing)}")
        for key in ("ein", "certified_copy"):
            if key not in self.one_time:
                raise ValueError(f"Montant one-time manquant: {key}")
        return self

    @property
    def states(self) -> list:
        return sorted(self.state_base)

    def fees_for(self, state: str) -> tuple:
        """Retourne (base, filing) en cents; UnsupportedRegion si l'État n'est pas proposé."""
        if state not in self.state_base:
            raise UnsupportedRegion(state)
        return self.state_base[state], self.state_filing[state]

    def certified_copy_amount(self, state: str) -> int:
        return self.certified_copy_by_state.get(state, self.one_time["certified_copy"])

    def recurring_price(self, add_on: str) -> Optional[RecurringPrice]:
        return self.recurring.get(add_on)


def default_catalog() -> PricingCatalog:
    """Catalogue construit à partir des tables ci-dessus et des Price IDs d'environnement."""
    return PricingCatalog(
        state_base=dict(STATE_BASE),
        state_filing=dict(STATE_FILING_FEES),
        one_time=dict(ONE_TIME),
        recurring={
            "ra": RecurringPrice(price_id=config.RA_YEARLY_PRICE_ID or None, interval=Interval.YEAR),
            "mail_forwarding": RecurringPrice(price_id=config.MAIL_MONTHLY_PRICE_ID or None, interval=Interval.MONTH),
        },
    )


def load_catalog(path: str) -> PricingCatalog:
    """
    Charge un catalogue JSON. Les Price IDs absents du fichier sont complétés
    depuis l'environnement (RA_YEARLY_PRICE_ID / MAIL_MONTHLY_PRICE_ID).
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    defaults = default_catalog().recurring
    recurring = raw.get("recurring") or {}
    for key, price in defaults.items():
        entry = recurring.setdefault(key, {})
        entry.setdefault("interval", price.interval.value)
        if not entry.get("price_id"):
            entry["price_id"] = price.price_id
    raw["recurring"] = recurring
    return PricingCatalog.model_validate(raw)


@lru_cache(maxsize=1)
def get_catalog() -> PricingCatalog:
    if config.PRICING_CATALOG_FILE:
        logger.info("payments.catalog loading file=%s", config.PRICING_CATALOG_FILE)
        return load_catalog(config.PRICING_CATALOG_FILE)
    return default_catalog()
