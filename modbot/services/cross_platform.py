"""Fan-out of one state transition to every platform account of an identity."""

import asyncio
import logging
from dataclasses import dataclass, field

from config import STORE_TIMEOUT_SECONDS

from .user_state import Transition

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    applied: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)  # client_type -> error
    results: dict[str, dict] = field(default_factory=dict)  # client_type -> updated row

    @property
    def complete(self) -> bool:
        return not self.skipped


class CrossPlatformApplier:
    """Apply a Transition account by account.

    Every account is attempted even after a failure, each with its own timeout,
    so an operator can see exactly which platforms still need a retry.
    """

    def __init__(self, db, timeout: float = STORE_TIMEOUT_SECONDS):
        self.db = db
        self.timeout = timeout

    async def apply(
        self, accounts: list[dict], transition: Transition, only_client_types: list[str] | None = None
    ) -> ApplyResult:
        result = ApplyResult()
        for account in accounts:
            client_type = account["client_type"]
            if only_client_types is not None and client_type not in only_client_types:
                continue
            try:
                row = await asyncio.wait_for(
                    self.db.update_account(
                        client_type,
                        account["user_id"],
                        transition.fields,
                        transition.warnings_delta,
                        expect=transition.expect,
                        unmuted_at=transition.unmuted_at,
                    ),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                logger.error("%s on %s/%s timed out", transition.action, client_type, account["user_id"])
                result.skipped[client_type] = "timed out"
                continue
            except Exception as e:
                logger.error("%s on %s/%s failed: %s", transition.action, client_type, account["user_id"], e)
                result.skipped[client_type] = str(e) or type(e).__name__
                continue
            if row is None:
                # CAS miss: the account changed underneath us (e.g. warnings already 0)
                result.skipped[client_type] = "state changed concurrently"
                continue
            result.applied.append(client_type)
            result.results[client_type] = row
        return result
