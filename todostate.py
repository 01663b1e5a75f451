from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict


class Tab(enum.Enum):
    HOME = "home"
    TODOS = "todos"
    ADD = "add"


class Focus(enum.Enum):
    NONE = "none"
    NAME = "name"
    CATEGORY = "category"
    TEXT = "text"


MENU_TITLES = ["Home", "TODOs", "Add", "Delete", "Quit"]

TAB_INDEX: Dict[Tab, int] = {
    Tab.HOME: 0,
    Tab.TODOS: 1,
    Tab.ADD: 2,
}

FOCUS_CYCLE: Dict[Focus, Focus] = {
    Focus.NONE: Focus.NAME,
    Focus.NAME: Focus.CATEGORY,
    Focus.CATEGORY: Focus.TEXT,
    Focus.TEXT: Focus.NAME,
}


def tab_index(tab: Tab) -> int:
    return TAB_INDEX[tab]


def next_focus(focus: Focus) -> Focus:
    return FOCUS_CYCLE[focus]


@dataclass
class InputBuffers:
    name: str = ""
    category: str = ""
    text: str = ""

    def get(self, focus: Focus) -> str:
        if focus is Focus.NONE:
            raise ValueError("no input is focused")
        return getattr(self, focus.value)

    def set(self, focus: Focus, value: str) -> None:
        if focus is Focus.NONE:
            raise ValueError("no input is focused")
        setattr(self, focus.value, value)

    def clear(self) -> None:
        self.name = ""
        self.category = ""
        self.text = ""


@dataclass
class AppState:
    active_tab: Tab = Tab.HOME
    focus: Focus = Focus.NONE
    inputs: InputBuffers = field(default_factory=InputBuffers)
    cursor: int | None = None
    running: bool = True
    status: str = ""

    @classmethod
    def initial(cls, item_count: int) -> "AppState":
        return cls(cursor=0 if item_count > 0 else None)

    @property
    def editing(self) -> bool:
        return self.focus is not Focus.NONE
