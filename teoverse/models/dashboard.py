"""
Dashboard Models
"""

from pydantic import Field

from teoverse.models.activity import ActivityLog
from teoverse.models.base import TeoModel
from teoverse.models.passport import Passport


class DashboardStats(TeoModel):
    passport_value_btc: float = Field(description="TEO balance converted at the mock rate, 4 decimals")
    btc_balance: float = Field(description="Mock wallet balance")
    teo_balance: float
    token_symbol: str
    total_assets: int
    member_count: int = Field(description="Passports in this federation")
    other_member_count: int = Field(description="Members other than the capital state")


class Dashboard(TeoModel):
    federation_name: str
    passport: Passport | None = None
    stats: DashboardStats
    recent_activity: list[ActivityLog] = Field(default_factory=list)
    flag_url: str | None = None


class FederationFlag(TeoModel):
    flag_url: str | None = None
