from .scoring_config import ScoringConfig, ScoringConfigStore

__all__ = ["ScoringConfig", "ScoringConfigStore"]
