"""Interactive column mapping and related operator prompts."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from mydevices.bulk.mapping import (
    TARGET_CHOICES,
    ColumnMapping,
    DeviceMetadata,
    Hierarchy,
    HierarchyMapping,
    LocationField,
    Target,
    mapped_targets,
    save_mapping,
    suggest_target,
)
from mydevices.bulk.prompts import Choice, Prompter
from mydevices.bulk.types import FormSettingsField

GO_BACK = "__back__"
SKIP = "__skip__"
DONE = "__done__"
CUSTOM_METADATA = "__metadata__"


@dataclass
class MappingSession:
    """State of one interactive mapping run.

    Columns are visited by index so that "go back" is a decrement plus
    reversing what the previous column added.
    """

    columns: list[str]
    index: int = 0
    used: set[Target] = field(default_factory=set)  # single-use targets taken
    hierarchy: list[str] = field(default_factory=list)
    assignments: dict[str, tuple[Target, ...]] = field(default_factory=dict)

    @property
    def done(self) -> bool:
        return self.index >= len(self.columns)

    @property
    def current_column(self) -> str:
        return self.columns[self.index]

    def assign(self, targets: tuple[Target, ...]) -> None:
        column = self.current_column
        self.assignments[column] = targets
        for target in targets:
            if isinstance(target, Hierarchy):
                self.hierarchy.append(column)
            else:
                self.used.add(target)
        self.index += 1

    def undo(self) -> None:
        """Step back to the previous column and forget its mapping."""
        if self.index == 0:
            return
        self.index -= 1
        column = self.current_column
        targets = self.assignments.pop(column, ())
        for target in targets:
            if isinstance(target, Hierarchy):
                self.hierarchy.remove(column)
            else:
                self.used.discard(target)

    def choices(self, picked: list[Target]) -> list[Choice]:
        """Targets still available for the current column."""
        items: list[Choice] = []
        for option in TARGET_CHOICES:
            target = option.target
            if target in picked or target in self.used:
                continue
            label = option.label
            if isinstance(target, Hierarchy) and self.hierarchy:
                label = f"{label} (Level {len(self.hierarchy) + 1})"
            items.append(Choice(label, target, option.description))

        items.append(
            Choice("Device Metadata (custom key)", CUSTOM_METADATA, "Stored in the device metadata map")
        )
        if picked:
            items.append(Choice("(done with this column)", DONE))
        else:
            items.append(Choice("(skip this column)", SKIP))
            if self.index > 0:
                items.append(Choice("(go back to previous column)", GO_BACK))
        return items

    def result(self) -> tuple[ColumnMapping, HierarchyMapping]:
        mapping: ColumnMapping = {c: self.assignments.get(c, ()) for c in self.columns}
        return mapping, HierarchyMapping(columns=list(self.hierarchy))


def _ask_metadata_key(session: MappingSession, column: str, prompter: Prompter, console: Console) -> Target:
    default = column.strip().lower().replace(" ", "_")
    while True:
        name = prompter.text("Metadata key name", default=default, required=True)
        target = DeviceMetadata(name)
        if target in session.used:
            console.print(f"[yellow]Metadata key '{escape(name)}' is already mapped[/yellow]")
            continue
        return target


def interactive_mapping(
    columns: list[str], prompter: Prompter, console: Console
) -> tuple[ColumnMapping, HierarchyMapping]:
    """Ask the operator to map every CSV column.

    Choosing the hierarchy target for several columns appends levels in
    selection order. A column can receive more than one target.

    Raises:
        PromptCancelled: If the operator aborts
    """
    console.print("\n[cyan]Column Mapping[/cyan]")
    console.print("[dim]Map each CSV column to a target field, or skip it.[/dim]")
    console.print(
        "[dim]Map hierarchy columns in order (e.g. Site, Building, Floor, Room).[/dim]"
    )

    session = MappingSession(columns=list(columns))

    while not session.done:
        column = session.current_column
        picked: list[Target] = []
        went_back = False

        while True:
            choices = session.choices(picked)
            default = None
            if not picked:
                suggestion = suggest_target(column)
                if any(c.value == suggestion for c in choices):
                    default = suggestion

            message = f'Map "{escape(column)}" to:' if not picked else f'Also map "{escape(column)}" to:'
            answer = prompter.select(message, choices, default)

            if answer == GO_BACK:
                session.undo()
                went_back = True
                break
            if answer in (SKIP, DONE):
                break

            if answer == CUSTOM_METADATA:
                answer = _ask_metadata_key(session, column, prompter, console)
            picked.append(answer)

            if not prompter.confirm(f'Map "{escape(column)}" to another field as well?', default=False):
                break

        if not went_back:
            session.assign(tuple(picked))

    return session.result()


def prompt_save_mapping(
    mapping: ColumnMapping,
    hierarchy: HierarchyMapping,
    prompter: Prompter,
    console: Console,
    default_path: str = "column-mapping.json",
) -> Path | None:
    """Offer to persist the mapping for later runs."""
    if not prompter.confirm("Save this mapping for reuse?", default=False):
        return None
    path = Path(prompter.text("Save mapping to", default=default_path, required=True))
    save_mapping(path, mapping, hierarchy)
    console.print(f"[green]✓[/green] Mapping saved to {path}")
    return path


# (attribute, prompt, required)
LOCATION_DEFAULT_PROMPTS = (
    ("address", "Default address", True),
    ("city", "Default city", True),
    ("state", "Default state", True),
    ("country", "Default country", True),
    ("zip", "Default ZIP code", False),
    ("timezone", "Default timezone", False),
    ("industry", "Default industry", True),
)


def prompt_location_defaults(mapping: ColumnMapping, prompter: Prompter, console: Console) -> dict[str, str]:
    """Ask for fallback values of location fields the CSV does not provide."""
    targets = mapped_targets(mapping)
    defaults: dict[str, str] = {}

    console.print("\n[cyan]Location Defaults[/cyan]")
    console.print("[dim]Provide default values for location fields not mapped from CSV.[/dim]")

    for attr, message, required in LOCATION_DEFAULT_PROMPTS:
        if LocationField(attr) in targets:
            continue
        suffix = "required" if required else "optional"
        value = prompter.text(f"{message} ({suffix})", required=required)
        if value:
            defaults[attr] = value
    return defaults


def prompt_form_settings(
    fields: list[FormSettingsField],
    overrides: dict[str, str],
    prompter: Prompter,
    console: Console,
) -> dict[str, str]:
    """Collect device settings, taking values from ``--device-setting`` first."""
    values: dict[str, str] = {}

    console.print("\n[cyan]Device Settings[/cyan]")
    console.print("[dim]Settings applied to every imported device.[/dim]")

    for form_field in fields:
        if form_field.key in overrides:
            values[form_field.key] = overrides[form_field.key]
            console.print(
                f"[dim]  {escape(form_field.label)}: {escape(overrides[form_field.key])} "
                "(from --device-setting)[/dim]"
            )
            continue

        for help_text in form_field.help_texts:
            console.print(f"[dim]  ℹ {escape(help_text)}[/dim]")

        default = None if form_field.default_value is None else str(form_field.default_value)
        if form_field.form == "select" and form_field.values:
            choices = [Choice(v.get("label", v["value"]), v["value"]) for v in form_field.values]
            values[form_field.key] = prompter.select(form_field.label, choices, default)
        else:
            values[form_field.key] = prompter.text(
                form_field.label, default=default, required=form_field.required
            )

    # Overrides for keys the template does not declare are still applied
    for key, value in overrides.items():
        values.setdefault(key, value)
    return values


def default_form_settings(fields: list[FormSettingsField], overrides: dict[str, str]) -> dict[str, str]:
    """Non-interactive settings: overrides, then template defaults."""
    values = {
        f.key: str(f.default_value)
        for f in fields
        if f.default_value is not None and f.default_value != ""
    }
    values.update(overrides)
    return values
