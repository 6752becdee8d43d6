# Load .env FIRST before any pydantic-settings initialization
# This ensures environment variables are available when Settings() is instantiated
from dotenv import load_dotenv
load_dotenv()

from dataclasses import dataclass, replace
from pydantic_settings import BaseSettings

from forensics.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    PROJECT_NAME: str = "Remora Order-Flow Forensics"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Trade tape thresholds (lots)
    FORENSICS_BIG_LOT: int = 1000
    FORENSICS_BANDAR_LOT: int = 500
    FORENSICS_SPLIT_WINDOW_SECONDS: int = 2
    FORENSICS_RANKING_SIZE: int = 5

    # Churning heuristic (tektokan)
    FORENSICS_CHURN_RATIO_PCT: float = 5.0  # |Net Foreign| / Value * 100 below this = churn
    FORENSICS_CHURN_MIN_VALUE: float = 50e9  # Only flag churn on liquid days (IDR)

    # Distribution graph
    FORENSICS_GRAPH_TOP_N: int = 12
    FORENSICS_GRAPH_EDGES_PER_BUYER: int = 10
    FORENSICS_GRAPH_TOP_K: int = 12

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()


@dataclass(frozen=True)
class ForensicsThresholds:
    """
    Policy thresholds for one analysis call.

    Immutable; build one per call with get_thresholds().
    """
    big_lot: int = 1000
    bandar_lot: int = 500
    split_window_seconds: int = 2
    ranking_size: int = 5
    churn_ratio_pct: float = 5.0
    churn_min_value: float = 50e9

    def __post_init__(self):
        for name in ("big_lot", "bandar_lot", "split_window_seconds",
                     "ranking_size", "churn_ratio_pct", "churn_min_value"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(name, value)

    def with_overrides(self, **overrides) -> "ForensicsThresholds":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


def get_thresholds(**overrides) -> ForensicsThresholds:
    """
    Build a fresh threshold set from settings.

    Keyword overrides (e.g. big_lot=2000) replace the configured defaults;
    None values are ignored.
    """
    base = ForensicsThresholds(
        big_lot=settings.FORENSICS_BIG_LOT,
        bandar_lot=settings.FORENSICS_BANDAR_LOT,
        split_window_seconds=settings.FORENSICS_SPLIT_WINDOW_SECONDS,
        ranking_size=settings.FORENSICS_RANKING_SIZE,
        churn_ratio_pct=settings.FORENSICS_CHURN_RATIO_PCT,
        churn_min_value=settings.FORENSICS_CHURN_MIN_VALUE,
    )
    return base.with_overrides(**overrides)
