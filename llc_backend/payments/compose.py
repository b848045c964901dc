"""
Composition du checkout, logique pure (pas de Stripe, pas d'I/O).
"""
from typing import List

from llc_backend.errors import MisconfiguredAddOn
from .catalog import PricingCatalog
from .models import AddOns, CheckoutIntent, DeferredKind, OneTimeItem, RecurringItem

# module llc_backend.payments.compose
def normalize_state(state: str) -> str:
    return (state or "").strip().upper()

def build_one_time_items(state: str, add_ons: AddOns, legal_name: str, catalog: PricingCatalog) -> List[OneTimeItem]:
    """
    Construit les lignes one-time dans un ordre fixe:
    - constitution (base) puis frais de dépôt de l'État, toujours présents
    - EIN puis copie certifiée, si sélectionnés
    - Soulève UnsupportedRegion si l'État n'a pas d'entrée au catalogue.
    """
    base, filing = catalog.fees_for(state)
    items = [
        OneTimeItem(label=f"LLC Formation — {legal_name} ({state})", amount=base),
        OneTimeItem(label=f"State Filing Fee ({state})", amount=filing),
    ]
    if add_ons.ein:
        items.append(OneTimeItem(label="EIN Filing (one-time)", amount=catalog.one_time["ein"]))
    if add_ons.certified_copy:
        items.append(OneTimeItem(label="Certified Copy (one-time)", amount=catalog.certified_copy_amount(state)))
    return items

def build_recurring_items(add_ons: AddOns, catalog: PricingCatalog) -> List[RecurringItem]:
    """
    Lignes récurrentes demandées, registered agent (annuel) en tête.
    Soulève MisconfiguredAddOn si un add-on sélectionné n'a pas de Price ID.
    """
    items: List[RecurringItem] = []
    for add_on in add_ons.recurring():
        price = catalog.recurring_price(add_on)
        if price is None or not price.configured:
            raise MisconfiguredAddOn(add_on)
        items.append(RecurringItem(add_on=add_on, price_id=price.price_id, interval=price.interval))
    return items

def compose(state: str, add_ons: AddOns, legal_name: str, catalog: PricingCatalog) -> CheckoutIntent:
    """
    Calcule le mode du checkout et l'éventuel abonnement différé.
    - 0 abonnement: mode "payment"
    - 1 abonnement: mode "subscription", inclus
    - 2 abonnements: Stripe refuse deux intervalles différents dans un même checkout;
      le premier (registered agent, annuel) est inclus, l'autre est différé.
    """
    state = normalize_state(state)
    legal_name = (legal_name or "").strip() or "LLC"
    one_time = build_one_time_items(state, add_ons, legal_name, catalog)
    recurring = build_recurring_items(add_ons, catalog)

    if not recurring:
        return CheckoutIntent(mode="payment", items=one_time, currency=catalog.currency)

    primary, deferred = recurring[0], recurring[1:]
    return CheckoutIntent(
        mode="subscription",
        items=[primary, *one_time],
        deferred=DeferredKind.for_add_on(deferred[0].add_on) if deferred else None,
        currency=catalog.currency,
    )
