from tokenkeeper.services.token_manager import TokenLifecycleManager

__all__ = ["TokenLifecycleManager"]
