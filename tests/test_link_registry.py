"""Tests du registre de liens: résolution, filtres et cycle de vie."""

from __future__ import annotations

from datetime import timedelta

import pytest

from crosskb.domain.errors import (
    InvalidLinkTransition,
    InvalidOperation,
    LinkConflict,
    LinkNotFound,
)
from crosskb.domain.models import LinkStatus, utcnow
from tests.fakes import unit

HEAVY = 0.9
LIGHT = 0.4


def test_request_is_pending_by_default(registry) -> None:
    link = registry.request_link("a", "b", name="docs")
    assert link.status == LinkStatus.PENDING
    assert registry.resolve_active_links("a") == []
    assert [p.id for p in registry.list_pending_requests("b")] == [link.id]


def test_defaults_applied(registry) -> None:
    link = registry.request_link("a", "b")
    assert link.weight == 1.0
    assert link.max_results == 5
    assert link.min_similarity == pytest.approx(0.1)


def test_auto_approve_is_active(registry) -> None:
    link = registry.request_link("a", "b", auto_approve=True)
    assert link.status == LinkStatus.ACTIVE
    assert [x.id for x in registry.resolve_active_links("a")] == [link.id]


def test_self_link_rejected(registry) -> None:
    with pytest.raises(LinkConflict):
        registry.request_link("a", "a")


def test_duplicate_pending_rejected(registry) -> None:
    registry.request_link("a", "b")
    with pytest.raises(LinkConflict):
        registry.request_link("a", "b")


def test_lifecycle_transitions(registry) -> None:
    """pending -> active -> suspended -> active; un lien rejeté ne peut pas être approuvé."""
    link = registry.request_link("a", "b")
    assert registry.approve_link(link.id).status == LinkStatus.ACTIVE
    assert registry.suspend_link(link.id).status == LinkStatus.SUSPENDED
    assert registry.resolve_active_links("a") == []
    assert registry.resume_link(link.id).status == LinkStatus.ACTIVE

    other = registry.request_link("a", "c")
    registry.reject_link(other.id)
    with pytest.raises(InvalidLinkTransition):
        registry.approve_link(other.id)


def test_request_again_after_rejection(registry) -> None:
    first = registry.request_link("a", "b")
    registry.reject_link(first.id)
    second = registry.request_link("a", "b")
    assert second.id != first.id


def test_single_active_link_per_pair(registry) -> None:
    """Reprendre un lien suspendu échoue si un autre lien actif existe pour la paire."""
    first = registry.request_link("a", "b", auto_approve=True)
    registry.suspend_link(first.id)
    registry.request_link("a", "b", auto_approve=True)
    with pytest.raises(LinkConflict):
        registry.resume_link(first.id)


def test_unknown_link(registry) -> None:
    with pytest.raises(LinkNotFound):
        registry.approve_link("missing")


def test_resolution_sorted_by_weight_and_skips_expired(registry) -> None:
    light = registry.request_link("a", "b", weight=LIGHT, auto_approve=True)
    heavy = registry.request_link("a", "c", weight=HEAVY, auto_approve=True)
    registry.request_link(
        "a", "d", auto_approve=True, expires_at=utcnow() - timedelta(minutes=1)
    )
    assert [x.id for x in registry.resolve_active_links("a")] == [heavy.id, light.id]


def test_update_link(registry) -> None:
    link = registry.request_link("a", "b", auto_approve=True)
    updated = registry.update_link(link.id, weight=LIGHT, include_tags=["faq"])
    assert updated.weight == LIGHT
    assert updated.include_tags == ["faq"]
    assert updated.status == LinkStatus.ACTIVE
    with pytest.raises(InvalidOperation):
        registry.update_link(link.id, status="rejected")


def test_update_link_clears_expiry(registry) -> None:
    """`None` explicite efface l'échéance; une clé absente laisse le champ intact."""
    link = registry.request_link(
        "a", "b", auto_approve=True, expires_at=utcnow() + timedelta(days=1)
    )
    kept = registry.update_link(link.id, weight=LIGHT)
    assert kept.expires_at == link.expires_at
    cleared = registry.update_link(link.id, expires_at=None)
    assert cleared.expires_at is None
    assert cleared.weight == LIGHT
    with pytest.raises(InvalidOperation):
        registry.update_link(link.id, weight=None)


def test_filters_exclusion_wins(registry) -> None:
    """Une unité à la fois incluse et exclue par tag est rejetée."""
    link = registry.request_link(
        "a",
        "b",
        include_tags=["public"],
        exclude_tags=["draft"],
        exclude_content_types=["application/pdf"],
    )
    assert registry.is_link_satisfied_by(link, unit("u1", "b", tags=["public"]))
    assert not registry.is_link_satisfied_by(link, unit("u2", "b", tags=["public", "draft"]))
    assert not registry.is_link_satisfied_by(link, unit("u3", "b", tags=["internal"]))
    assert not registry.is_link_satisfied_by(
        link, unit("u4", "b", tags=["public"], content_type="application/pdf")
    )


def test_list_links_by_status(registry) -> None:
    active = registry.request_link("a", "b", auto_approve=True)
    registry.request_link("a", "c")
    assert [x.id for x in registry.list_links("a", LinkStatus.ACTIVE)] == [active.id]
    assert len(registry.list_links("a")) == 2
