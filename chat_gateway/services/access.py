"""Subscription and free-tier quota gate, evaluated before any billable work."""

import logging
from dataclasses import dataclass
from typing import Optional

from chat_gateway.core import config
from chat_gateway.core.errors import AccessDeniedError, AccessReason, PersistenceError
from chat_gateway.providers.router import is_premium
from chat_gateway.services.billing import BillingClient, BillingError, is_active
from chat_gateway.services.persistence import ChatRepository, UserRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[AccessReason] = None
    subscribed: bool = False
    limit: Optional[int] = None

    def raise_for_denial(self) -> None:
        if not self.allowed and self.reason is not None:
            raise AccessDeniedError(self.reason, limit=self.limit)


class AccessController:
    def __init__(
        self,
        chats: ChatRepository,
        users: UserRepository,
        billing: Optional[BillingClient] = None,
        *,
        chat_limit: Optional[int] = None,
        message_limit: Optional[int] = None,
    ) -> None:
        self.chats = chats
        self.users = users
        self.billing = billing
        self.chat_limit = config.FREE_CHAT_LIMIT if chat_limit is None else chat_limit
        self.message_limit = config.FREE_MESSAGE_LIMIT if message_limit is None else message_limit

    async def is_subscribed(self, user_id: str) -> bool:
        """
        The durable flag caches the billing provider's answer. When a billing
        subscription id is on file the flag is re-verified on every check and
        rewritten on mismatch; a billing failure falls back to the flag.
        """
        try:
            profile = await self.users.get_user(user_id)
        except PersistenceError as e:
            logger.error("error checking subscription status for %s: %s", user_id, e)
            return False
        if profile is None:
            return False
        stored = bool(profile.is_subscribed)
        if not profile.stripe_subscription_id or self.billing is None:
            return stored

        try:
            status = await self.billing.subscription_status(profile.stripe_subscription_id)
        except BillingError as e:
            logger.error("billing subscription check failed for %s: %s", user_id, e)
            return stored
        active = is_active(status)
        if active != stored:
            logger.info("reconciling subscription flag for %s: %s -> %s", user_id, stored, active)
            try:
                await self.users.set_subscribed(user_id, active)
            except PersistenceError as e:
                logger.error("could not reconcile subscription flag for %s: %s", user_id, e)
        return active

    async def evaluate(self, user_id: str, session_id: str, requested_model: str) -> AccessDecision:
        subscribed = await self.is_subscribed(user_id)
        if subscribed:
            return AccessDecision(allowed=True, subscribed=True)

        existing = await self.chats.get_chat(session_id, user_id)
        if existing is None:
            if await self.chats.count_chats(user_id) >= self.chat_limit:
                return AccessDecision(allowed=False, reason=AccessReason.QUOTA_NEW_CHAT, limit=self.chat_limit)
        elif existing.message_count >= self.message_limit:
            return AccessDecision(allowed=False, reason=AccessReason.QUOTA_MESSAGES, limit=self.message_limit)

        if is_premium(requested_model):
            return AccessDecision(allowed=False, reason=AccessReason.PREMIUM_REQUIRED)
        return AccessDecision(allowed=True)

    async def confirm_premium(self, user_id: str) -> None:
        # re-checked at dispatch time; a subscription may lapse mid-request
        if not await self.is_subscribed(user_id):
            raise AccessDeniedError(AccessReason.PREMIUM_REQUIRED)
