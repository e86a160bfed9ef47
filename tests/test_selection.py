"""Tests for target discovery and selection."""

from __future__ import annotations

from pathlib import Path

import pytest
from azure_mock import MockSubscription, MockSubscriptionClient
from conftest import SUB_A, SUB_B, SUB_C

from onboarding.models import Target
from onboarding.selection import (
    RunSetupError,
    list_candidate_targets,
    load_selection_file,
    select_targets,
)

CANDIDATES = [Target(SUB_A, "alpha"), Target(SUB_B, "bravo"), Target(SUB_C, "charlie")]


class TestListCandidateTargets:
    def test_enabled_only_sorted_by_name(self) -> None:
        client = MockSubscriptionClient(
            [
                MockSubscription(SUB_C, "charlie"),
                MockSubscription(SUB_A.upper(), "Alpha"),
                MockSubscription(SUB_B, "bravo", state="Disabled"),
            ]
        )

        candidates = list_candidate_targets(client)

        assert candidates == [Target(SUB_A, "Alpha"), Target(SUB_C, "charlie")]


class TestSelectTargets:
    """Tests for select_targets."""

    def test_requested_order_preserved(self) -> None:
        selected = select_targets(CANDIDATES, [SUB_C, SUB_A])
        assert [t.subscription_id for t in selected] == [SUB_C, SUB_A]

    def test_duplicates_dropped(self) -> None:
        selected = select_targets(CANDIDATES, [SUB_A, SUB_A.upper(), SUB_B])
        assert [t.subscription_id for t in selected] == [SUB_A, SUB_B]

    def test_select_all(self) -> None:
        assert select_targets(CANDIDATES, select_all=True) == CANDIDATES

    def test_no_candidates(self) -> None:
        with pytest.raises(RunSetupError, match="No subscriptions available"):
            select_targets([], [SUB_A])

    def test_nothing_selected(self) -> None:
        with pytest.raises(RunSetupError, match="No subscriptions selected"):
            select_targets(CANDIDATES, [])

    def test_unknown_subscription(self) -> None:
        unknown = "dddddddd-0000-0000-0000-000000000004"

        with pytest.raises(RunSetupError) as exc_info:
            select_targets(CANDIDATES, [SUB_A, unknown, "garbage"])

        assert unknown in str(exc_info.value)
        assert "garbage" in str(exc_info.value)


class TestLoadSelectionFile:
    """Tests for load_selection_file."""

    def test_plain_file(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.yaml"
        path.write_text(
            f"""
subscriptions:
  - id: {SUB_A}
    name: alpha
  - id: {SUB_B.upper()}
"""
        )

        selection = load_selection_file(path)

        assert selection.subscription_ids == [SUB_A, SUB_B]
        assert selection.select_all is False

    def test_wrapped_file(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.yaml"
        path.write_text(
            """
apiVersion: onboarding/v1
kind: TargetSelection
metadata:
  name: all-subscriptions
spec:
  all: true
"""
        )

        assert load_selection_file(path).select_all is True

    def test_validation_errors_listed(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.yaml"
        path.write_text("subscriptions:\n  - id: not-a-guid\n")

        with pytest.raises(RunSetupError) as exc_info:
            load_selection_file(path)

        assert "subscriptions.0.id" in str(exc_info.value)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.yaml"
        path.write_text("subscriptions: [unclosed\n")

        with pytest.raises(RunSetupError, match="Invalid YAML"):
            load_selection_file(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "targets.yaml"
        path.write_text(f"- {SUB_A}\n")

        with pytest.raises(RunSetupError, match="mapping"):
            load_selection_file(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(RunSetupError, match="not found"):
            load_selection_file(tmp_path / "missing.yaml")
