"""
TeoVerse - Dashboard

Everything the capital state's overview needs in one response.
"""

import asyncio

import structlog

from teoverse.config import FederationIdentity, get_federation_identity
from teoverse.models.dashboard import Dashboard, DashboardStats
from teoverse.models.passport import Passport
from teoverse.models.user import User
from teoverse.services.activity_log import ActivityLogService
from teoverse.services.dex import MOCK_BTC_BALANCE, MOCK_RATE
from teoverse.services.flag import FlagService
from teoverse.services.passport import PassportService

logger = structlog.get_logger(__name__)

RECENT_ACTIVITY_COUNT = 5


def build_stats(passport: Passport | None, member_count: int, token_symbol: str) -> DashboardStats:
    teo_balance = passport.teo_balance if passport else 0
    return DashboardStats(
        passport_value_btc=round(teo_balance / MOCK_RATE, 4),
        btc_balance=MOCK_BTC_BALANCE,
        teo_balance=teo_balance,
        token_symbol=token_symbol,
        total_assets=passport.total_assets if passport else 0,
        member_count=member_count,
        other_member_count=max(member_count - 1, 0),
    )


class DashboardService:

    def __init__(
        self,
        passports: PassportService,
        activity: ActivityLogService,
        flags: FlagService,
        identity: FederationIdentity | None = None,
    ):
        self.passports = passports
        self.activity = activity
        self.flags = flags
        self.identity = identity or get_federation_identity()

    async def get_dashboard(self, user: User) -> Dashboard:
        passport, member_count, recent, flag_url = await asyncio.gather(
            self.passports.get_passport(user.id),
            self.passports.get_federation_member_count(),
            self.activity.get_recent_activity(user.id, RECENT_ACTIVITY_COUNT),
            self.flags.get_federation_flag_url(),
        )
        return Dashboard(
            federation_name=self.identity.federation_name,
            passport=passport,
            stats=build_stats(passport, member_count, self.identity.token_symbol),
            recent_activity=recent,
            flag_url=flag_url,
        )

    async def regenerate_flag(self, user: User) -> str:
        passport = await self.passports.require_passport(user.id)
        return await self.flags.generate_federation_flag(passport)
