"""
Registre Redis des abonnements différés déjà traités.

Clé: deferred-subscription:{session_id}:{kind}
- "pending:{holder}"  : création en cours (SET NX, bail court DEDUP_PENDING_TTL_SECONDS)
- "created:{sub_id}"  : abonnement créé, toute relivraison est ignorée (DEDUP_TTL_SECONDS)
Un échec de création libère la clé pour que la relivraison Stripe réessaie; un
worker tué laisse expirer son bail.
"""
import logging
import os
from typing import Optional

import redis

from llc_backend import config
from .models import DeferredKind

try:
    import fakeredis  # tests only
except Exception:
    fakeredis = None

logger = logging.getLogger(__name__)

PENDING_PREFIX = "pending:"
CREATED_PREFIX = "created:"


def _decode(value):
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class DeferredSubscriptionLedger:
    def __init__(
        self,
        client: "redis.Redis",
        ttl_seconds: Optional[int] = None,
        pending_ttl_seconds: Optional[int] = None,
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds or config.DEDUP_TTL_SECONDS
        self.pending_ttl_seconds = pending_ttl_seconds or config.DEDUP_PENDING_TTL_SECONDS

    @staticmethod
    def key(session_id: str, kind: DeferredKind) -> str:
        return f"deferred-subscription:{session_id}:{kind.value}"

    def try_acquire(self, key: str, holder_id: str) -> bool:
        """Pose le verrou pour holder_id; False si la clé existe déjà (en cours ou terminé)."""
        return bool(self.client.set(key, f"{PENDING_PREFIX}{holder_id}", nx=True, ex=self.pending_ttl_seconds))

    def mark_completed(self, key: str, subscription_id: str) -> None:
        self.client.set(key, f"{CREATED_PREFIX}{subscription_id}", ex=self.ttl_seconds)

    def release(self, key: str, holder_id: str) -> bool:
        """
        Supprime la clé seulement si holder_id détient encore le verrou.
        WATCH/MULTI: un bail expiré puis repris par un autre worker n'est pas libéré.
        """
        with self.client.pipeline() as pipe:
            try:
                pipe.watch(key)
                if _decode(pipe.get(key)) != f"{PENDING_PREFIX}{holder_id}":
                    pipe.unwatch()
                    return False
                pipe.multi()
                pipe.delete(key)
                pipe.execute()
                return True
            except redis.WatchError:
                return False

    def status(self, key: str) -> Optional[str]:
        return _decode(self.client.get(key))

    def is_pending(self, key: str) -> bool:
        return (self.status(key) or "").startswith(PENDING_PREFIX)

    def is_completed(self, key: str) -> bool:
        return (self.status(key) or "").startswith(CREATED_PREFIX)


def build_ledger() -> Optional[DeferredSubscriptionLedger]:
    """
    Construit le registre à partir de l'environnement.
    - DISABLE_DEDUP_LEDGER=1: pas de registre (relivraisons non dédupliquées)
    - USE_FAKE_REDIS_FOR_TESTS=1: fakeredis en mémoire
    - sinon DEDUP_REDIS_URL (connexion paresseuse, au premier appel)
    """
    if os.getenv("DISABLE_DEDUP_LEDGER") == "1":
        logger.warning("payments.ledger disabled: duplicate webhook deliveries are not deduplicated")
        return None
    if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
        if not fakeredis:
            raise RuntimeError("USE_FAKE_REDIS_FOR_TESTS=1 mais fakeredis n'est pas installé.")
        client = fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    else:
        client = redis.from_url(config.DEDUP_REDIS_URL, encoding="utf-8", decode_responses=True)
    return DeferredSubscriptionLedger(client)
