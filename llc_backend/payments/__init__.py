"""
Module 'payments' (feature-first): point d'entrée public.
Réunit catalogue de prix, composition du checkout, metadata Stripe, client Stripe,
registre des abonnements différés et services.
"""

from .catalog import PricingCatalog, RecurringPrice, Interval, default_catalog, load_catalog, get_catalog
from .models import AddOns, CheckoutIntent, DeferredKind, OneTimeItem, RecurringItem, ReconcileResult, ReconcileState, VerifiedContext
from .compose import compose, build_one_time_items, build_recurring_items
from .metadata import make_metadata, parse_add_ons, extract_deferred
from .ledger import DeferredSubscriptionLedger, build_ledger
from .service import create_checkout, verify_checkout, reconcile_completed_session, handle_event

__all__ = [
    # catalog
    "PricingCatalog",
    "RecurringPrice",
    "Interval",
    "default_catalog",
    "load_catalog",
    "get_catalog",
    # models
    "AddOns",
    "CheckoutIntent",
    "DeferredKind",
    "OneTimeItem",
    "RecurringItem",
    "ReconcileResult",
    "ReconcileState",
    "VerifiedContext",
    # compose
    "compose",
    "build_one_time_items",
    "build_recurring_items",
    # metadata
    "make_metadata",
    "parse_add_ons",
    "extract_deferred",
    # ledger
    "DeferredSubscriptionLedger",
    "build_ledger",
    # services
    "create_checkout",
    "verify_checkout",
    "reconcile_completed_session",
    "handle_event",
]
