from __future__ import annotations

import argparse
import configparser
import curses
import logging
import os
import re
import sys
import textwrap
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Protocol

from todoevents import TICK_INTERVAL, CursesKeyBackend, ErrorEvent, Event, EventSource, KeyEvent
from todokeys import DEFAULT_KEYBINDS, build_keybinds, dispatch, key_name, parse_keys
from todostate import MENU_TITLES, AppState, Focus, InputBuffers, Tab, tab_index
from todostore import DB_PATH, StoreError, TodoItem, TodoStore

CONFIG_PATH = Path.home() / ".config" / "todocli" / "config.ini"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
COPYRIGHT = "todocli --- all rights reserved"
ADD_HELP = "Use <tab> to switch between fields, <enter> to submit, <esc> to leave a field"

MIN_WIDTH = 60
MIN_HEIGHT = 22
MIN_TICK_MS = 10

COLOR_NAMES = {
    "black": curses.COLOR_BLACK,
    "red": curses.COLOR_RED,
    "green": curses.COLOR_GREEN,
    "yellow": curses.COLOR_YELLOW,
    "blue": curses.COLOR_BLUE,
    "magenta": curses.COLOR_MAGENTA,
    "cyan": curses.COLOR_CYAN,
    "white": curses.COLOR_WHITE,
    "default": -1,
    "none": -1,
}

DEFAULT_COLORS = {
    "default_fg": "white",
    "focus_fg": "magenta",
    "highlight_fg": "yellow",
}

# color pair numbers
PAIR_DEFAULT = 1
PAIR_FOCUS = 2
PAIR_HIGHLIGHT = 3

SECTION_LINE = re.compile(r"^\s*\[([^\]]+)\]")
OPTION_LINE = re.compile(r"^([^\s=:#;\[][^=:]*?)\s*[=:]")

logger = logging.getLogger("todocli")


@dataclass
class Config:
    keybinds: Dict[str, set]
    data_file: Path
    tick_interval: float
    log_file: Path | None
    default_fg: int
    focus_fg: int
    highlight_fg: int


def color_number(value: str) -> int:
    key = value.strip().lower()
    if key in COLOR_NAMES:
        return COLOR_NAMES[key]
    return int(key)


def default_config() -> Config:
    return Config(
        keybinds=build_keybinds(),
        data_file=DB_PATH,
        tick_interval=TICK_INTERVAL,
        log_file=None,
        default_fg=color_number(DEFAULT_COLORS["default_fg"]),
        focus_fg=color_number(DEFAULT_COLORS["focus_fg"]),
        highlight_fg=color_number(DEFAULT_COLORS["highlight_fg"]),
    )


def option_lines(text: str) -> dict[tuple[str, str], int]:
    """Map (section, option) to the line it was set on, for error messages."""
    lines: dict[tuple[str, str], int] = {}
    section = None
    for number, line in enumerate(text.splitlines(), 1):
        header = SECTION_LINE.match(line)
        if header:
            section = header.group(1).strip().lower()
            continue
        option = OPTION_LINE.match(line)
        if option and section:
            lines[(section, option.group(1).strip().lower())] = number
    return lines


def read_ini(path: Path) -> tuple[configparser.ConfigParser, dict[tuple[str, str], int], str | None]:
    parser = configparser.ConfigParser(interpolation=None)
    if not path.exists():
        return parser, {}, None
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return parser, {}, f"could not read config: {exc}"
    try:
        parser.read_string(text, source=str(path))
    except configparser.Error as exc:
        return parser, {}, f"could not parse config: {exc}"
    return parser, option_lines(text), None


def load_config(path: Path = CONFIG_PATH) -> tuple[Config, list[str]]:
    """Read the INI config; any error means defaults are used and the errors are returned."""
    parser, line_numbers, read_error = read_ini(path)
    errors: list[str] = [read_error] if read_error else []

    def where(section: str, option: str) -> str:
        ln = line_numbers.get((section, option))
        return f"line {ln}: " if ln else ""

    def option(section: str, name: str) -> str | None:
        if not parser.has_section(section):
            return None
        raw = parser.get(section, name, fallback=None)
        return raw.strip() if raw is not None else None

    overrides: Dict[str, set] = {}
    if parser.has_section("keybinds"):
        for action, csv in parser.items("keybinds"):
            if action not in DEFAULT_KEYBINDS:
                errors.append(f"{where('keybinds', action)}unknown action '{action}'")
                continue
            try:
                overrides[action] = parse_keys(csv)
            except ValueError as exc:
                errors.append(f"{where('keybinds', action)}keybinds.{action}: {exc}")
    keybinds = build_keybinds(overrides)
    bound_to: Dict[object, str] = {}
    for action, keys in keybinds.items():
        for key in sorted(keys, key=str):
            other = bound_to.setdefault(key, action)
            if other != action:
                errors.append(f"{where('keybinds', action)}{key_name(key)} is bound to both {other} and {action}")

    colors: Dict[str, int] = {}
    for name, fallback in DEFAULT_COLORS.items():
        raw = option("colors", name)
        try:
            colors[name] = color_number(raw if raw else fallback)
        except ValueError:
            errors.append(f"{where('colors', name)}colors.{name} '{raw}' is not a color name or number")

    data_file = DB_PATH
    raw = option("general", "data_file")
    if raw:
        candidate = Path(raw).expanduser()
        if candidate.is_dir():
            errors.append(f"{where('general', 'data_file')}data_file points to a directory")
        else:
            data_file = candidate

    tick_interval = TICK_INTERVAL
    raw = option("general", "tick_ms")
    if raw:
        try:
            tick_interval = max(MIN_TICK_MS, int(raw)) / 1000
        except ValueError:
            errors.append(f"{where('general', 'tick_ms')}tick_ms must be a whole number of milliseconds")

    log_file = None
    raw = option("general", "log_file")
    if raw:
        candidate = Path(raw).expanduser()
        if candidate.is_dir():
            errors.append(f"{where('general', 'log_file')}log_file points to a directory")
        else:
            log_file = candidate

    if errors:
        return default_config(), errors

    return Config(
        keybinds=keybinds,
        data_file=data_file,
        tick_interval=tick_interval,
        log_file=log_file,
        **colors,
    ), []


def configure_logging(log_file: Path | None) -> None:
    root = logging.getLogger()
    if log_file is None:
        # keep the last-resort stderr handler from scribbling over the screen
        root.addHandler(logging.NullHandler())
        return
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)


@dataclass
class Frame:
    tab: Tab
    menu_index: int
    todos: List[TodoItem] = field(default_factory=list)
    cursor: int | None = None
    selected: TodoItem | None = None
    inputs: InputBuffers = field(default_factory=InputBuffers)
    focus: Focus = Focus.NONE
    status: str = ""


def build_frame(state: AppState, store: TodoStore) -> Frame:
    """Derive everything the next redraw needs; the todo list is re-read every call."""
    frame = Frame(
        tab=state.active_tab,
        menu_index=tab_index(state.active_tab),
        inputs=InputBuffers(state.inputs.name, state.inputs.category, state.inputs.text),
        focus=state.focus,
        status=state.status,
    )
    if state.active_tab is Tab.TODOS:
        frame.todos = store.load()
        if state.cursor is not None and 0 <= state.cursor < len(frame.todos):
            frame.cursor = state.cursor
            frame.selected = frame.todos[state.cursor]
    return frame


def put(win: curses.window, y: int, x: int, text: str, width: int, attr: int = 0) -> None:
    if width <= 0:
        return
    try:
        win.addnstr(y, x, text, width, attr)
    except curses.error:
        pass


def draw_box(win: curses.window, y: int, x: int, h: int, w: int, title: str, attr: int) -> None:
    if h < 2 or w < 2:
        return
    try:
        win.hline(y, x + 1, curses.ACS_HLINE | attr, w - 2)
        win.hline(y + h - 1, x + 1, curses.ACS_HLINE | attr, w - 2)
        win.vline(y + 1, x, curses.ACS_VLINE | attr, h - 2)
        win.vline(y + 1, x + w - 1, curses.ACS_VLINE | attr, h - 2)
        win.addch(y, x, curses.ACS_ULCORNER | attr)
        win.addch(y, x + w - 1, curses.ACS_URCORNER | attr)
        win.addch(y + h - 1, x, curses.ACS_LLCORNER | attr)
        win.addch(y + h - 1, x + w - 1, curses.ACS_LRCORNER | attr)
    except curses.error:
        pass
    if title:
        put(win, y, x + 2, f" {title} ", w - 4, attr | curses.A_BOLD)


def first_key(config: Config, action: str) -> str:
    keys = sorted(config.keybinds.get(action, set()), key=str)
    return key_name(keys[0]) if keys else "?"


def draw_menu(stdscr: curses.window, frame: Frame, y: int, x: int, w: int) -> None:
    draw_box(stdscr, y, x, 3, w, "Menu", curses.color_pair(PAIR_DEFAULT))
    col = x + 2
    limit = x + w - 1
    for idx, title in enumerate(MENU_TITLES):
        if idx:
            put(stdscr, y + 1, col, " | ", limit - col, curses.color_pair(PAIR_DEFAULT))
            col += 3
        active = idx == frame.menu_index
        rest_attr = curses.color_pair(PAIR_HIGHLIGHT if active else PAIR_DEFAULT)
        if active:
            rest_attr |= curses.A_BOLD
        put(stdscr, y + 1, col, title[0], limit - col, curses.color_pair(PAIR_HIGHLIGHT) | curses.A_UNDERLINE)
        put(stdscr, y + 1, col + 1, title[1:], limit - col - 1, rest_attr)
        col += len(title)


def draw_home(stdscr: curses.window, config: Config, y: int, x: int, h: int, w: int) -> None:
    base = curses.color_pair(PAIR_DEFAULT)
    draw_box(stdscr, y, x, h, w, "Home", base)
    hint = (
        f"Press '{first_key(config, 'todos')}' to access TODOs, '{first_key(config, 'add')}' to add a new TODO "
        f"and '{first_key(config, 'delete')}' to delete the currently selected TODO."
    )
    lines: list[tuple[str, int]] = [
        ("", base),
        ("Welcome", base),
        ("", base),
        ("to", base),
        ("", base),
        ("todocli", curses.color_pair(PAIR_FOCUS) | curses.A_BOLD),
        ("", base),
    ]
    inner = max(1, w - 4)
    lines.extend((segment, base) for segment in textwrap.wrap(hint, width=inner))
    row = y + 1
    for text, attr in lines:
        if row >= y + h - 1:
            break
        put(stdscr, row, x + 2, text.center(inner), inner, attr)
        row += 1


def detail_columns(width: int) -> list[tuple[str, int]]:
    id_w = 9
    created_w = min(24, max(10, width // 4))
    rest = max(3, width - id_w - created_w)
    name_w = rest * 25 // 100
    category_w = rest * 20 // 100
    text_w = rest - name_w - category_w
    return [("ID", id_w), ("Name", name_w), ("Category", category_w), ("Text", text_w), ("Created At", created_w)]


def draw_todos(stdscr: curses.window, frame: Frame, y: int, x: int, h: int, w: int) -> None:
    base = curses.color_pair(PAIR_DEFAULT)
    list_w = max(14, w * 20 // 100)
    detail_w = w - list_w
    draw_box(stdscr, y, x, h, list_w, "TODOs", base)
    draw_box(stdscr, y, x + list_w, h, detail_w, "Detail", base)

    inner = list_w - 2
    visible = max(1, h - 2)
    offset = 0
    if frame.cursor is not None and frame.cursor >= visible:
        offset = frame.cursor - visible + 1
    for row, todo in enumerate(frame.todos[offset : offset + visible]):
        idx = offset + row
        attr = base
        if idx == frame.cursor:
            attr = curses.color_pair(PAIR_FOCUS) | curses.A_BOLD | curses.A_REVERSE
        put(stdscr, y + 1 + row, x + 1, todo.name.ljust(inner), inner, attr)

    columns = detail_columns(detail_w - 4)
    col_x = x + list_w + 2
    header_y = y + 1
    todo = frame.selected
    cells = ["", "", "", "", ""]
    if todo is not None:
        cells = [
            str(todo.id),
            todo.name,
            todo.category,
            todo.text,
            todo.created_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
        ]
    max_rows = max(1, h - 3)
    for (label, col_w), cell in zip(columns, cells):
        put(stdscr, header_y, col_x, label, col_w - 1, base | curses.A_BOLD)
        if label == "Text":
            segments = textwrap.wrap(cell, width=max(1, col_w - 1)) or [""]
        else:
            segments = [cell]
        for line_no, segment in enumerate(segments[:max_rows]):
            put(stdscr, header_y + 1 + line_no, col_x, segment, col_w - 1, base)
        col_x += col_w


def draw_add(stdscr: curses.window, frame: Frame, y: int, x: int, h: int, w: int) -> None:
    base = curses.color_pair(PAIR_DEFAULT)
    draw_box(stdscr, y, x, 3, w, "Help", base)
    put(stdscr, y + 1, x + 2, ADD_HELP, w - 4, curses.color_pair(PAIR_FOCUS))

    fields = [
        (Focus.NAME, "Name", "Name for a TODO: ", 3),
        (Focus.CATEGORY, "Category", "Category for a TODO: ", 3),
        (Focus.TEXT, "Text", "Text for a TODO: ", max(3, h - 9)),
    ]
    row = y + 3
    for focus, title, label, box_h in fields:
        focused = frame.focus is focus
        border = curses.color_pair(PAIR_FOCUS) | curses.A_BOLD if focused else base
        text_attr = base if focused else base | curses.A_DIM
        draw_box(stdscr, row, x, box_h, w, title, border)
        content = label + frame.inputs.get(focus)
        inner = w - 4
        if box_h > 3:
            segments = textwrap.wrap(content, width=max(1, inner), drop_whitespace=False) or [content]
            # keep the end of the text visible while typing
            segments = segments[-(box_h - 2):]
        else:
            segments = [content[-inner:] if len(content) > inner else content]
        for line_no, segment in enumerate(segments):
            put(stdscr, row + 1 + line_no, x + 2, segment, inner, text_attr)
        row += box_h


def draw(stdscr: curses.window, frame: Frame, config: Config) -> None:
    stdscr.erase()
    height, width = stdscr.getmaxyx()
    if width < MIN_WIDTH or height < MIN_HEIGHT:
        msg = f"todocli needs at least {MIN_WIDTH}x{MIN_HEIGHT}. current: {width}x{height}"
        hint = "resize your terminal to continue"
        y = height // 2 - 1
        put(stdscr, max(0, y), 1, msg, max(0, width - 2), curses.A_BOLD)
        put(stdscr, max(0, y + 1), 1, hint, max(0, width - 2))
        stdscr.refresh()
        return

    x = 2
    inner_w = width - 4
    draw_menu(stdscr, frame, 1, x, inner_w)
    body_y = 4
    footer_y = height - 5
    body_h = footer_y - body_y
    if frame.tab is Tab.HOME:
        draw_home(stdscr, config, body_y, x, body_h, inner_w)
    elif frame.tab is Tab.TODOS:
        draw_todos(stdscr, frame, body_y, x, body_h, inner_w)
    else:
        draw_add(stdscr, frame, body_y, x, body_h, inner_w)

    draw_box(stdscr, footer_y, x, 3, inner_w, "Copyright", curses.color_pair(PAIR_DEFAULT))
    put(stdscr, footer_y + 1, x + 2, COPYRIGHT.center(inner_w - 4), inner_w - 4, curses.color_pair(PAIR_FOCUS))
    status = frame.status or f"{first_key(config, 'quit')} quit  tab next field  esc leave field  enter submit"
    put(stdscr, height - 2, x + 1, status, inner_w - 2, curses.color_pair(PAIR_DEFAULT) | curses.A_DIM)
    stdscr.refresh()


def show_message(stdscr: curses.window, title: str, messages: list[str], hint: str) -> None:
    """Centered bordered box listing ``messages``; blocks until a key is pressed."""
    height, width = stdscr.getmaxyx()
    box_w = max(20, min(width - 2, 72))
    inner = box_w - 6
    body = [f"- {segment}" for msg in messages for segment in textwrap.wrap(msg, width=max(10, inner - 2))]
    box_h = max(5, min(height - 2, len(body) + 4))
    win = curses.newwin(box_h, box_w, max(0, (height - box_h) // 2), max(0, (width - box_w) // 2))
    win.erase()
    win.border()
    put(win, 0, max(1, (box_w - len(title) - 2) // 2), f" {title} ", box_w - 2, curses.A_BOLD)
    for row, line in enumerate(body[: box_h - 4], 1):
        put(win, row, 3, line, inner)
    put(win, box_h - 2, max(2, (box_w - len(hint)) // 2), hint, box_w - 4, curses.A_DIM)
    win.refresh()
    try:
        win.getch()
    except curses.error:
        pass


class EventFeed(Protocol):
    def get(self) -> Event: ...


def run_loop(
    state: AppState,
    store: TodoStore,
    events: EventFeed,
    render: Callable[[Frame], None],
    keybinds: Dict[str, set] | None = None,
) -> None:
    """Redraw, wait for the next event, dispatch; repeat until quit."""
    while state.running:
        render(build_frame(state, store))
        event = events.get()
        if isinstance(event, ErrorEvent):
            raise event.error
        if isinstance(event, KeyEvent):
            state.status = ""
            dispatch(state, store, event.key, keybinds)


def setup_screen(config: Config) -> None:
    try:
        curses.curs_set(0)
    except curses.error:
        pass
    curses.start_color()
    curses.use_default_colors()
    curses.init_pair(PAIR_DEFAULT, config.default_fg, -1)
    curses.init_pair(PAIR_FOCUS, config.focus_fg, -1)
    curses.init_pair(PAIR_HIGHLIGHT, config.highlight_fg, -1)
    # captured so clicks do not leak into the terminal; never acted on
    curses.mousemask(curses.ALL_MOUSE_EVENTS | curses.REPORT_MOUSE_POSITION)


def main(stdscr: curses.window, config: Config, config_errors: list[str]) -> None:
    setup_screen(config)
    stdscr.keypad(True)
    if config_errors:
        show_message(stdscr, "Config errors (defaults applied)", config_errors, "Press any key to continue with defaults.")

    store = TodoStore(config.data_file)
    state = AppState.initial(len(store.load()))
    # every curses call after this point happens under screen_lock
    screen_lock = threading.Lock()
    source = EventSource(CursesKeyBackend(screen_lock), config.tick_interval)

    def render(frame: Frame) -> None:
        with screen_lock:
            draw(stdscr, frame, config)

    source.start()
    logger.info("started with %s", config.data_file)
    try:
        run_loop(state, store, source, render, config.keybinds)
    finally:
        source.stop()
        with screen_lock:
            try:
                curses.curs_set(1)
            except curses.error:
                pass
    logger.info("quit")


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="todocli", description="Browse, add and delete todos in the terminal.")
    ap.add_argument("--config", default=None, help=f"INI config file (default: {CONFIG_PATH})")
    ap.add_argument("--data-file", default=None, help=f"JSON todo store (default: {DB_PATH})")
    ap.add_argument("--log-file", default=None, help="Write a debug log to this file (default: no logging)")
    return ap


def run(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    config_path = Path(args.config).expanduser() if args.config else CONFIG_PATH
    config, config_errors = load_config(config_path)
    if args.data_file:
        config.data_file = Path(args.data_file).expanduser()
    if args.log_file:
        config.log_file = Path(args.log_file).expanduser()
    configure_logging(config.log_file)
    for err in config_errors:
        logger.warning("config: %s", err)

    os.environ.setdefault("ESCDELAY", "25")
    try:
        curses.wrapper(main, config, config_errors)
    except (StoreError, IndexError) as exc:
        logger.error("fatal: %s", exc)
        print(f"todocli: {exc}", file=sys.stderr)
        return 1
    except curses.error as exc:
        logger.error("terminal error: %s", exc)
        print(f"todocli: terminal error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(run())
