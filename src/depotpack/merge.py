from depotpack.types import Resolved, ResolutionResult

__all__ = ["can_merge", "merge"]


def can_merge(hub: ResolutionResult, later: ResolutionResult) -> bool:
    """Hub found manifests but no keys, and the later source has keys."""
    return (
        isinstance(hub, Resolved)
        and bool(hub.manifests)
        and not hub.depot_keys
        and isinstance(later, Resolved)
        and bool(later.depot_keys)
    )


def merge(hub: ResolutionResult, later: ResolutionResult) -> ResolutionResult:
    """Manifests from the hub, keys from ``later``; anything else returns ``later`` untouched.

    The merged result drops ``later``'s prebuilt archive so the package is
    rebuilt with a script covering both halves.
    """
    if not can_merge(hub, later):
        return later
    assert isinstance(hub, Resolved) and isinstance(later, Resolved)
    return Resolved(
        hub.app_id,
        dict(later.depot_keys),
        dict(hub.manifests),
        f"{hub.label} + {later.label}",
        dlc_ids=hub.dlc_ids,
        game_name=hub.game_name or later.game_name,
        artifacts=later.artifacts,
    )
