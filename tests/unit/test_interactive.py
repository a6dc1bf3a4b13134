"""Tests for the interactive mapping session driven by a scripted prompter."""

from __future__ import annotations

import pytest
from rich.console import Console

from mydevices.bulk.interactive import (
    CUSTOM_METADATA,
    DONE,
    GO_BACK,
    SKIP,
    MappingSession,
    default_form_settings,
    interactive_mapping,
    prompt_form_settings,
    prompt_location_defaults,
    prompt_save_mapping,
)
from mydevices.bulk.mapping import (
    DeviceField,
    DeviceMetadata,
    Hierarchy,
    HierarchyMapping,
    LocationField,
    load_mapping,
)
from mydevices.bulk.prompts import PromptCancelled
from mydevices.bulk.types import FormSettingsField


class ScriptedPrompter:
    """Answers prompts from queues and records what was asked."""

    def __init__(self, selects=(), texts=(), confirms=()):
        self.selects = list(selects)
        self.texts = list(texts)
        self.confirms = list(confirms)
        self.select_calls = []
        self.text_calls = []
        self.confirm_calls = []

    def select(self, message, choices, default=None):
        self.select_calls.append((message, list(choices), default))
        if not self.selects:
            raise PromptCancelled()
        return self.selects.pop(0)

    def text(self, message, default=None, required=False):
        self.text_calls.append((message, default, required))
        if not self.texts:
            raise PromptCancelled()
        return self.texts.pop(0)

    def confirm(self, message, default=False):
        self.confirm_calls.append(message)
        if not self.confirms:
            return default
        return self.confirms.pop(0)


@pytest.fixture
def console():
    return Console(record=True, width=120)


def labels(call):
    return [choice.label for choice in call[1]]


class TestMappingSession:
    def test_hierarchy_label_counts_levels(self):
        session = MappingSession(columns=["Site", "Building", "Floor"])

        assert "Location Hierarchy" in [c.label for c in session.choices([])]

        session.assign((Hierarchy(),))
        session.assign((Hierarchy(),))

        assert "Location Hierarchy (Level 3)" in [c.label for c in session.choices([])]

    def test_single_use_targets_are_removed(self):
        session = MappingSession(columns=["EUI", "Other"])
        session.assign((DeviceField("hardware_id"),))

        values = [c.value for c in session.choices([])]

        assert DeviceField("hardware_id") not in values
        assert Hierarchy() in values

    def test_undo_releases_targets(self):
        session = MappingSession(columns=["Site", "EUI", "Name"])
        session.assign((Hierarchy(),))
        session.assign((DeviceField("hardware_id"),))

        session.undo()

        assert session.current_column == "EUI"
        assert DeviceField("hardware_id") not in session.used
        assert session.hierarchy == ["Site"]

        session.undo()

        assert session.index == 0
        assert session.hierarchy == []

    def test_undo_at_first_column_is_noop(self):
        session = MappingSession(columns=["Site"])

        session.undo()

        assert session.index == 0

    def test_navigation_choices(self):
        session = MappingSession(columns=["Site", "EUI"])
        first = [c.value for c in session.choices([])]
        assert SKIP in first
        assert GO_BACK not in first

        session.assign((Hierarchy(),))
        second = [c.value for c in session.choices([])]
        assert GO_BACK in second

        picked = [c.value for c in session.choices([DeviceField("hardware_id")])]
        assert DONE in picked
        assert SKIP not in picked
        assert DeviceField("hardware_id") not in picked


class TestInteractiveMapping:
    def test_basic_mapping(self, console):
        prompter = ScriptedPrompter(
            selects=[Hierarchy(), Hierarchy(), DeviceField("hardware_id"), SKIP]
        )

        mapping, hierarchy = interactive_mapping(
            ["Site", "Building", "EUI", "Notes"], prompter, console
        )

        assert hierarchy.columns == ["Site", "Building"]
        assert mapping == {
            "Site": (Hierarchy(),),
            "Building": (Hierarchy(),),
            "EUI": (DeviceField("hardware_id"),),
            "Notes": (),
        }

    def test_suggestions_are_offered_as_default(self, console):
        prompter = ScriptedPrompter(selects=[Hierarchy(), DeviceField("hardware_id")])

        interactive_mapping(["Site", "DevEUI"], prompter, console)

        assert prompter.select_calls[0][2] == Hierarchy()
        assert prompter.select_calls[1][2] == DeviceField("hardware_id")

    def test_second_hierarchy_column_sees_level_two(self, console):
        prompter = ScriptedPrompter(selects=[Hierarchy(), Hierarchy()])

        interactive_mapping(["Site", "Building"], prompter, console)

        assert "Location Hierarchy" in labels(prompter.select_calls[0])
        assert "Location Hierarchy (Level 2)" in labels(prompter.select_calls[1])

    def test_go_back_remaps_previous_column(self, console):
        prompter = ScriptedPrompter(
            selects=[
                DeviceField("name"),  # Site, by mistake
                GO_BACK,  # from Building
                Hierarchy(),  # Site again
                Hierarchy(),  # Building
            ]
        )

        mapping, hierarchy = interactive_mapping(["Site", "Building"], prompter, console)

        assert mapping == {"Site": (Hierarchy(),), "Building": (Hierarchy(),)}
        assert hierarchy.columns == ["Site", "Building"]
        # device.name was released by going back
        assert DeviceField("name") in [c.value for c in prompter.select_calls[2][1]]

    def test_column_with_several_targets(self, console):
        prompter = ScriptedPrompter(
            selects=[DeviceField("hardware_id"), DeviceField("name"), DONE],
            confirms=[True, True],
        )

        mapping, _ = interactive_mapping(["EUI"], prompter, console)

        assert mapping == {"EUI": (DeviceField("hardware_id"), DeviceField("name"))}
        assert prompter.select_calls[1][0].startswith("Also map")

    def test_custom_metadata_key(self, console):
        prompter = ScriptedPrompter(selects=[CUSTOM_METADATA], texts=["floor_plan"])

        mapping, _ = interactive_mapping(["Floor Plan"], prompter, console)

        assert mapping == {"Floor Plan": (DeviceMetadata("floor_plan"),)}
        assert prompter.text_calls[0][1] == "floor_plan"

    def test_duplicate_metadata_key_is_asked_again(self, console):
        prompter = ScriptedPrompter(
            selects=[CUSTOM_METADATA, CUSTOM_METADATA],
            texts=["plan", "plan", "plan_b"],
        )

        mapping, _ = interactive_mapping(["Plan", "Plan B"], prompter, console)

        assert mapping["Plan B"] == (DeviceMetadata("plan_b"),)
        assert "already mapped" in console.export_text()

    def test_cancel_propagates(self, console):
        prompter = ScriptedPrompter(selects=[])

        with pytest.raises(PromptCancelled):
            interactive_mapping(["Site"], prompter, console)


def test_prompt_save_mapping(tmp_path, console):
    path = tmp_path / "saved.json"
    prompter = ScriptedPrompter(texts=[str(path)], confirms=[True])
    mapping = {"Site": (Hierarchy(),)}

    saved = prompt_save_mapping(mapping, HierarchyMapping(columns=["Site"]), prompter, console)

    assert saved == path
    assert load_mapping(path) == (mapping, HierarchyMapping(columns=["Site"]))


def test_prompt_save_mapping_declined(console):
    prompter = ScriptedPrompter(confirms=[False])

    assert prompt_save_mapping({}, HierarchyMapping(), prompter, console) is None
    assert prompter.text_calls == []


def test_location_defaults_skip_mapped_fields(console):
    prompter = ScriptedPrompter(texts=["1 Main St", "Paris", "IDF", "FR", "", "Retail"])
    mapping = {"Site": (Hierarchy(),), "Tz": (LocationField("timezone"),)}

    defaults = prompt_location_defaults(mapping, prompter, console)

    asked = [call[0] for call in prompter.text_calls]
    assert not any("timezone" in message for message in asked)
    assert defaults == {
        "address": "1 Main St",
        "city": "Paris",
        "state": "IDF",
        "country": "FR",
        "industry": "Retail",
    }


class TestFormSettings:
    @pytest.fixture
    def fields(self):
        return [
            FormSettingsField(key="interval", label="Interval", default_value=15, required=True),
            FormSettingsField(
                key="mode",
                label="Mode",
                form="select",
                values=[{"label": "Fast", "value": "fast"}, {"label": "Slow", "value": "slow"}],
                default_value="slow",
            ),
        ]

    def test_prompts_for_each_field(self, fields, console):
        prompter = ScriptedPrompter(selects=["fast"], texts=["30"])

        values = prompt_form_settings(fields, {}, prompter, console)

        assert values == {"interval": "30", "mode": "fast"}
        assert prompter.text_calls[0][1] == "15"
        assert prompter.select_calls[0][2] == "slow"

    def test_overrides_are_not_prompted(self, fields, console):
        prompter = ScriptedPrompter(selects=["slow"])

        values = prompt_form_settings(fields, {"interval": "60", "extra": "x"}, prompter, console)

        assert values == {"interval": "60", "mode": "slow", "extra": "x"}
        assert prompter.text_calls == []

    def test_defaults_without_prompting(self, fields):
        assert default_form_settings(fields, {"mode": "fast"}) == {
            "interval": "15",
            "mode": "fast",
        }
