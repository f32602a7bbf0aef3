"""
Runtime feature-flag evaluation: staged rollouts, audience targeting and
cross-flag dependencies, backed by the Django ORM.

    from core.flags.service import build_feature_flag_service
    from core.flags.evaluation import FeatureFlagContext

    flags = build_feature_flag_service()
    flags.evaluate_flag("dark_mode", FeatureFlagContext(environment="production", user_id="u-1"))
"""
