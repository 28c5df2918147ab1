"""
Client-side filter engine.

A FilterSet is a conjunction of independent predicates: free-text search,
assignee, priority, status and parent membership. An empty predicate puts no
constraint on its axis. Every predicate is evaluated from data already on the
rendered card; nothing is fetched.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set, Tuple

# Assignee value for "no one assigned"
UNASSIGNED = ""
# Parent value for "show all tickets"
SHOW_ALL_PARENTS = "0"

AXES = ("assignee", "priority", "status", "parent")


@dataclass(frozen=True)
class FilterTag:
    """One removable entry in the active-filters bar."""
    type: str
    label: str
    value: str


@dataclass
class FilterOption:
    value: str
    label: str
    selected: bool = False


@dataclass
class FilterSet:
    search: str = ""
    assignees: Set[str] = field(default_factory=set)
    priorities: Set[str] = field(default_factory=set)
    statuses: Set[str] = field(default_factory=set)
    parents: Set[str] = field(default_factory=lambda: {SHOW_ALL_PARENTS})

    def _axis(self, axis: str) -> Set[str]:
        try:
            return {
                "assignee": self.assignees,
                "priority": self.priorities,
                "status": self.statuses,
                "parent": self.parents,
            }[axis]
        except KeyError:
            raise ValueError(f"Unknown filter axis: {axis}")

    # ── Evaluation ───────────────────────────────────────────────────────────

    @property
    def query(self) -> str:
        return self.search.strip().lower()

    def matches(self, card) -> bool:
        """True iff the card satisfies every active predicate."""
        if self.query and self.query not in card.text.lower():
            return False
        if self.assignees and (card.assignee or UNASSIGNED) not in self.assignees:
            return False
        if self.priorities and str(card.priority) not in self.priorities:
            return False
        if self.statuses and str(card.status) not in self.statuses:
            return False
        if self.parents and SHOW_ALL_PARENTS not in self.parents:
            if not self.parents.intersection(card.parents):
                return False
        return True

    @property
    def is_active(self) -> bool:
        """Whether anything narrows the board (drives the filter button state)."""
        return bool(
            self.query or self.assignees or self.priorities or self.statuses
            or (self.parents - {SHOW_ALL_PARENTS})
        )

    # ── Mutation ─────────────────────────────────────────────────────────────

    def set_option(self, axis: str, value, checked: bool) -> None:
        """Check or uncheck one option; the parent axis keeps "show all" exclusive."""
        value = str(value)
        if axis == "parent":
            self._set_parent(value, checked)
            return
        selected = self._axis(axis)
        if checked:
            selected.add(value)
        else:
            selected.discard(value)

    def _set_parent(self, value: str, checked: bool) -> None:
        if checked:
            if value == SHOW_ALL_PARENTS:
                self.parents.clear()
            else:
                self.parents.discard(SHOW_ALL_PARENTS)
            self.parents.add(value)
        else:
            self.parents.discard(value)
            if not self.parents:
                self.parents.add(SHOW_ALL_PARENTS)

    def remove(self, tag: FilterTag) -> None:
        """Clear exactly the predicate value behind a tag."""
        if tag.type == "search":
            self.search = ""
        else:
            self.set_option(tag.type, tag.value, False)

    def clear_all(self) -> None:
        self.search = ""
        self.assignees.clear()
        self.priorities.clear()
        self.statuses.clear()
        self.parents.clear()
        self.parents.add(SHOW_ALL_PARENTS)

    # ── Active-filters bar ───────────────────────────────────────────────────

    def active_tags(self, labels: Dict[str, Dict[str, str]]) -> List[FilterTag]:
        """
        Rebuild the active-filter tags from scratch.

        ``labels`` maps axis -> value -> display text; values without a label
        are shown raw.
        """
        tags: List[FilterTag] = []
        search = self.search.strip()
        if search:
            tags.append(FilterTag("search", f'Search: "{search}"', search))

        for axis, title, values in (
            ("assignee", "Assignee", self.assignees),
            ("priority", "Priority", self.priorities),
            ("status", "Status", self.statuses),
            ("parent", "Parent", self.parents - {SHOW_ALL_PARENTS}),
        ):
            names = labels.get(axis, {})
            for value in sorted(values, key=_option_sort_key):
                if axis == "assignee" and value == UNASSIGNED:
                    text = names.get(value, "Unassigned")
                else:
                    text = names.get(value, value)
                tags.append(FilterTag(axis, f"{title}: {text}", value))
        return tags


def _option_sort_key(value: str) -> Tuple[int, int, str]:
    """Unassigned first, then numeric values in order, then anything else."""
    if value == UNASSIGNED:
        return (0, 0, "")
    if value.isdigit():
        return (1, int(value), "")
    return (2, 0, value)


def search_options(options: Iterable[FilterOption], query: str) -> Tuple[List[FilterOption], str]:
    """
    Narrow a filter panel's option list by label text.

    Returns the visible options and the "selected of visible" counter text.
    """
    options = list(options)
    q = query.strip().lower()
    visible = [o for o in options if not q or q in o.label.lower()]
    selected = sum(1 for o in options if o.selected)
    return visible, f"{selected} of {len(visible)}"
