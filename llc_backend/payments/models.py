# module llc_backend.payments.models
"""Types du checkout: add-ons, lignes, intention de paiement, contexte vérifié."""
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from llc_backend.errors import InvalidDeferredMarker
from .catalog import Interval

# Add-ons récurrents, dans l'ordre de préférence pour le checkout initial
RECURRING_ADD_ONS = ("ra", "mail_forwarding")


class AddOns(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ein: bool = False
    certified_copy: bool = False
    ra: bool = False
    mail_forwarding: bool = False

    def recurring(self) -> List[str]:
        return [key for key in RECURRING_ADD_ONS if getattr(self, key)]


class DeferredKind(str, Enum):
    """Abonnement exclu du checkout initial, créé ensuite par le webhook."""
    RA = "ra"
    MAIL = "mail"

    @property
    def add_on(self) -> str:
        return "ra" if self is DeferredKind.RA else "mail_forwarding"

    @classmethod
    def for_add_on(cls, add_on: str) -> "DeferredKind":
        return cls.RA if add_on == "ra" else cls.MAIL

    @classmethod
    def from_metadata(cls, value: Optional[str]) -> Optional["DeferredKind"]:
        """"" ou absent -> None; valeur inconnue -> InvalidDeferredMarker."""
        value = (value or "").strip()
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            raise InvalidDeferredMarker(value)

    @staticmethod
    def to_metadata(kind: Optional["DeferredKind"]) -> str:
        return kind.value if kind else ""


class OneTimeItem(BaseModel):
    kind: Literal["one_time"] = "one_time"
    label: str
    amount: int

    def to_stripe(self, currency: str) -> Dict[str, Any]:
        return {
            "price_data": {
                "currency": currency,
                "product_data": {"name": self.label},
                "unit_amount": self.amount,
            },
            "quantity": 1,
        }


class RecurringItem(BaseModel):
    kind: Literal["recurring"] = "recurring"
    add_on: str
    price_id: str
    interval: Interval

    def to_stripe(self) -> Dict[str, Any]:
        # Price Stripe existant: montant et devise portés par le Price
        return {"price": self.price_id, "quantity": 1}


LineItem = Union[OneTimeItem, RecurringItem]


class CheckoutIntent(BaseModel):
    mode: Literal["payment", "subscription"]
    items: List[LineItem]
    deferred: Optional[DeferredKind] = None
    currency: str = "usd"

    @property
    def one_time_items(self) -> List[OneTimeItem]:
        return [i for i in self.items if isinstance(i, OneTimeItem)]

    @property
    def recurring_items(self) -> List[RecurringItem]:
        return [i for i in self.items if isinstance(i, RecurringItem)]

    @property
    def one_time_total(self) -> int:
        return sum(i.amount for i in self.one_time_items)

    def line_items(self) -> List[Dict[str, Any]]:
        """Lignes Stripe: l'abonnement (s'il y en a un) d'abord, puis les frais one-time."""
        recurring = [item.to_stripe() for item in self.recurring_items]
        return recurring + [item.to_stripe(self.currency) for item in self.one_time_items]


class VerifiedContext(BaseModel):
    paid: bool = True
    session_id: str
    customer_email: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    customer_id: Optional[str] = None
    entity_id: Optional[str] = None
    state: Optional[str] = None
    add_ons: AddOns = AddOns()


class ReconcileState(str, Enum):
    NOOP = "no-op"
    PENDING_CREATE = "pending-create"
    CREATED = "created"
    CREATE_FAILED = "create-failed"
    DUPLICATE = "duplicate"


class ReconcileResult(BaseModel):
    state: ReconcileState
    session_id: Optional[str] = None
    deferred: Optional[DeferredKind] = None
    subscription_id: Optional[str] = None
    detail: Optional[str] = None
