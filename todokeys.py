from __future__ import annotations

import curses
import logging
from typing import Dict

from todostate import AppState, Focus, Tab, next_focus
from todostore import TodoItem, TodoStore

logger = logging.getLogger(__name__)

TAB_KEYS = {"\t", 9}
ENTER_KEYS = {"\n", "\r", getattr(curses, "KEY_ENTER", 10), 10, 13}
ESC_KEYS = {"\x1b", 27}
BACKSPACE_KEYS = {curses.KEY_BACKSPACE, "\b", "\x7f", 8, 127}

# names usable in the [keybinds] config section; "KEY_DOWN" style is accepted too
NAMED_KEYS = {
    "up": curses.KEY_UP,
    "down": curses.KEY_DOWN,
    "left": curses.KEY_LEFT,
    "right": curses.KEY_RIGHT,
    "home": curses.KEY_HOME,
    "end": curses.KEY_END,
    "pgup": curses.KEY_PPAGE,
    "pgdn": curses.KEY_NPAGE,
    "del": curses.KEY_DC,
}

DEFAULT_KEYBINDS: Dict[str, tuple[str, ...]] = {
    "quit": ("q",),
    "home": ("h",),
    "todos": ("t",),
    "add": ("a",),
    "delete": ("d",),
    "down": ("down",),
    "up": ("up",),
}


def parse_key(token: str) -> object:
    """Map a config token such as ``j``, ``down`` or ``KEY_DOWN`` to what get_wch returns."""
    name = token.strip()
    if len(name) == 1:
        return name
    lowered = name.lower()
    if lowered.startswith("key_"):
        lowered = lowered[4:]
    if lowered in NAMED_KEYS:
        return NAMED_KEYS[lowered]
    raise ValueError(f"unknown key {name!r}")


def parse_keys(csv: str) -> set:
    return {parse_key(token) for token in csv.split(",") if token.strip()}


def build_keybinds(overrides: Dict[str, set] | None = None) -> Dict[str, set]:
    """Default bindings with whole-action replacements from ``overrides``."""
    binds = {action: {parse_key(t) for t in tokens} for action, tokens in DEFAULT_KEYBINDS.items()}
    for action, keys in (overrides or {}).items():
        if action not in binds:
            raise KeyError(action)
        binds[action] = set(keys)
    return binds


def key_name(key: object) -> str:
    if key in ENTER_KEYS:
        return "enter"
    if key in TAB_KEYS:
        return "tab"
    if key in ESC_KEYS:
        return "esc"
    for name, code in NAMED_KEYS.items():
        if key == code:
            return name
    if isinstance(key, str):
        return key
    return f"key-{key}"


def is_printable(key: object) -> bool:
    return isinstance(key, str) and len(key) == 1 and key.isprintable()


def dispatch(state: AppState, store: TodoStore, key: object, keybinds: Dict[str, set] | None = None) -> None:
    """Apply one key press to the state; store errors from mutations propagate."""
    binds = keybinds if keybinds is not None else build_keybinds()

    def is_action(action: str) -> bool:
        return key in binds.get(action, set())

    # Tab and Enter behave the same whether or not a field is focused
    if key in TAB_KEYS:
        state.focus = next_focus(state.focus)
        return
    if key in ENTER_KEYS:
        if state.active_tab is Tab.ADD:
            submit(state, store)
        return

    if state.editing:
        if key in ESC_KEYS:
            state.focus = Focus.NONE
        elif key in BACKSPACE_KEYS:
            current = state.inputs.get(state.focus)
            state.inputs.set(state.focus, current[:-1])
        elif is_printable(key):
            state.inputs.set(state.focus, state.inputs.get(state.focus) + key)
        return

    if is_action("quit"):
        state.running = False
    elif is_action("home"):
        state.active_tab = Tab.HOME
    elif is_action("todos"):
        state.active_tab = Tab.TODOS
    elif is_action("add"):
        state.active_tab = Tab.ADD
    elif is_action("delete"):
        delete_selected(state, store)
    elif is_action("down"):
        move_cursor(state, store, 1)
    elif is_action("up"):
        move_cursor(state, store, -1)


def submit(state: AppState, store: TodoStore) -> TodoItem:
    item = TodoItem.create(state.inputs.name, state.inputs.category, state.inputs.text)
    store.append(item)
    state.inputs.clear()
    state.focus = Focus.NONE
    state.status = f"added {item.name}" if item.name else "added"
    return item


def delete_selected(state: AppState, store: TodoStore) -> None:
    selected = state.cursor
    if selected is None:
        return
    try:
        removed = store.remove_at(selected)
    except IndexError:
        # remove_at read the file strictly, so its length is trustworthy here
        count = len(store.load())
        logger.warning("cursor %d is past the end of %d todos; nothing deleted", selected, count)
        state.cursor = count - 1 if count else None
        return
    state.cursor = selected - 1 if selected >= 1 else None
    state.status = f"deleted {removed.name}" if removed.name else "deleted"


def move_cursor(state: AppState, store: TodoStore, step: int) -> None:
    # list length is re-read on every press so deletions are reflected
    count = len(store.load())
    if count == 0:
        return
    if state.cursor is None:
        state.cursor = 0 if step > 0 else count - 1
        return
    current = min(state.cursor, count - 1)
    state.cursor = (current + step) % count
