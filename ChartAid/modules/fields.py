"""
Form field primitives shared by the diagnosis, MSE and PE forms.

Every structured control in ChartAid is either a single-select (radio semantics) or a
multi-select (checkbox semantics). Both may carry an "others" option whose free-text
value is stored next to the selection. Multi-selects may also declare an exclusion
map: selecting an exclusive label such as "normal" or "none" clears every other
label, and selecting any other label clears the exclusive ones.

Records are plain nested dictionaries. The helpers here never mutate their inputs;
they return new top-level objects and copy only the dictionaries along the edited
path, so untouched sections keep their identity.
"""
# chartaid/modules/fields.py

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

OTHERS = "others"
OTHERS_LABEL = "其他"

Path = Tuple[str, ...]


class Field:
    """Declarative description of one form control.

    Attributes:
        path (tuple): Keys leading to the value inside the owning record.
        label (str): Caption shown above the control in the form.
        note_label (str): Label used when the value is rendered into note text.
        options (list): The fixed, ordered option labels.
        multi (bool): True for checkbox semantics, False for radio semantics.
        other_path (tuple): Path of the attached free-text value, or None when the
            control has no "others" option.
        exclude_map (dict): Exclusive label -> labels it is incompatible with.
    """
    def __init__(self, path, label, options, multi=True, other_path=None, exclude_map=None, note_label=None):
        self.path = tuple(path)
        self.label = label
        self.note_label = note_label or label
        self.options = list(options or [])
        self.multi = multi
        self.other_path = tuple(other_path) if other_path else None
        self.exclude_map = dict(exclude_map or {})

    @property
    def key(self) -> str:
        """A flat identifier for the field, used for widget keys."""
        return ".".join(self.path)

    def __repr__(self):
        return f"Field({self.key!r}, multi={self.multi})"


def ensure_list(value: Any) -> List[str]:
    """Coerces a stored multi-select value into a list.

    Older records stored a single string where a list is now expected, and unset
    fields may be missing or null. This is the one place that shape is normalized.

    Args:
        value: None, a scalar label, or a list/tuple of labels.

    Returns:
        A new list of labels.
    """
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def options_with_others(field: Field) -> List[str]:
    """Returns the field's options followed by the "others" sentinel when it has one."""
    options = list(field.options)
    if field.other_path:
        options.append(OTHERS)
    return options


def display_label(option: str) -> str:
    """Maps the sentinel to its on-screen caption; other labels pass through."""
    return OTHERS_LABEL if option == OTHERS else option


def select_single(current: Optional[str], choice: str) -> str:
    """Radio semantics: the chosen option replaces whatever was selected."""
    return choice


def toggle_multi(current: Any, label: str, exclude_map: Optional[Dict[str, Sequence[str]]] = None) -> List[str]:
    """Checkbox semantics with optional mutual exclusion.

    Args:
        current: The stored selection (coerced with `ensure_list`).
        label: The label being toggled.
        exclude_map: Exclusive label -> labels it cannot coexist with.

    Returns:
        The new selection. Removing a label never re-adds anything; adding an
        exclusive label yields exactly `[label]`; adding any other label (including
        the sentinel) drops all exclusive labels.
    """
    selected = ensure_list(current)
    exclude_map = exclude_map or {}

    if label in selected:
        return [v for v in selected if v != label]

    if label in exclude_map:
        return [label]
    return [v for v in selected + [label] if v not in exclude_map]


def get_path(record: Optional[Dict], path: Iterable[str], default: Any = None) -> Any:
    """Reads a nested value, returning `default` when any step is missing."""
    node: Any = record
    for key in path:
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return node


def set_path(record: Optional[Dict], path: Iterable[str], value: Any) -> Dict:
    """Returns a copy of `record` with `value` stored at `path`.

    Only the dictionaries along `path` are copied; every sibling keeps its identity.
    """
    path = tuple(path)
    updated = dict(record or {})
    if len(path) == 1:
        updated[path[0]] = value
        return updated
    head, rest = path[0], path[1:]
    child = updated.get(head)
    updated[head] = set_path(child if isinstance(child, dict) else {}, rest, value)
    return updated


def apply_single(record: Dict, field: Field, choice: str) -> Dict:
    """Stores a radio choice; leaving the sentinel clears its free text."""
    updated = set_path(record, field.path, select_single(get_path(record, field.path), choice))
    if field.other_path and choice != OTHERS and get_path(updated, field.other_path):
        updated = set_path(updated, field.other_path, "")
    return updated


def apply_toggle(record: Dict, field: Field, label: str) -> Dict:
    """Toggles one checkbox label and stores the resulting selection."""
    selection = toggle_multi(get_path(record, field.path), label, field.exclude_map)
    return set_path(record, field.path, selection)


def apply_selection(record: Dict, field: Field, new_selection: Sequence[str]) -> Dict:
    """Applies a whole new multi-select value coming from a widget.

    Widgets such as `st.multiselect` report the full selection after a click.
    The difference with the stored value tells which label was toggled, and that
    toggle is replayed through `toggle_multi` so exclusion rules still hold.
    """
    current = ensure_list(get_path(record, field.path))
    added = [v for v in new_selection if v not in current]
    removed = [v for v in current if v not in new_selection]
    updated = record
    for label in removed:
        updated = apply_toggle(updated, field, label)
    for label in added:
        updated = apply_toggle(updated, field, label)
    return updated


def apply_other_text(record: Dict, field: Field, text: str) -> Dict:
    """Stores the free text attached to the field's "others" option."""
    if not field.other_path:
        return record
    return set_path(record, field.other_path, text)
