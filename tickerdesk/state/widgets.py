"""Widget registry: per-screen tile collections and their reducer."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType

from instrukt_ai_logging import get_logger

from tickerdesk.state.intents import Intent, IntentType

logger = get_logger(__name__)


class WidgetSize(str, Enum):
    """Tile size presets."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


@dataclass(frozen=True)
class WidgetLayout:
    """Grid placement of a tile."""

    x: float
    y: float
    w: float
    h: float


@dataclass(frozen=True)
class Widget:
    """A configurable tile on one screen."""

    id: str
    screen: str
    size: WidgetSize = WidgetSize.MEDIUM
    data: object | None = None
    is_resizable: bool = True
    content: str | None = None  # widget kind, e.g. "StockCard"
    stock: str | None = None
    layout: WidgetLayout | None = None


def _empty_screens() -> Mapping[str, tuple[Widget, ...]]:
    return MappingProxyType({})


@dataclass(frozen=True)
class WidgetsState:
    """Widgets keyed by screen; ids are unique only within a screen."""

    by_screen: Mapping[str, tuple[Widget, ...]] = field(default_factory=_empty_screens)

    def get(self, screen: str, widget_id: str) -> Widget | None:
        for widget in self.by_screen.get(screen, ()):
            if widget.id == widget_id:
                return widget
        return None


def _parse_size(raw: object) -> WidgetSize | None:
    if isinstance(raw, WidgetSize):
        return raw
    if isinstance(raw, str):
        try:
            return WidgetSize(raw.strip().lower())
        except ValueError:
            return None
    return None


def _with_screen(state: WidgetsState, screen: str, widgets: tuple[Widget, ...]) -> WidgetsState:
    by_screen = dict(state.by_screen)
    if widgets:
        by_screen[screen] = widgets
    else:
        by_screen.pop(screen, None)
    return WidgetsState(by_screen=MappingProxyType(by_screen))


def _update_one(state: WidgetsState, screen: str | None, widget_id: str | None, **changes: object) -> WidgetsState:
    if not screen or not widget_id or state.get(screen, widget_id) is None:
        logger.debug("Widget %s not on screen %s, ignoring update", widget_id, screen)
        return state
    widgets = tuple(
        replace(widget, **changes) if widget.id == widget_id else widget  # type: ignore[arg-type]
        for widget in state.by_screen[screen]
    )
    return _with_screen(state, screen, widgets)


def reduce_widgets(state: WidgetsState, intent: Intent) -> WidgetsState:
    """Apply intent to the widget registry and return the new state."""
    t = intent.type
    p = intent.payload

    if t is IntentType.ADD_WIDGET:
        screen = p.get("screen")
        widget = p.get("widget")
        if not screen or not isinstance(widget, Widget):
            return state
        if state.get(screen, widget.id) is not None:
            logger.debug("Widget %s already on screen %s", widget.id, screen)
            return state
        if widget.screen != screen:
            widget = replace(widget, screen=screen)
        return _with_screen(state, screen, (*state.by_screen.get(screen, ()), widget))

    if t is IntentType.REMOVE_WIDGET:
        screen = p.get("screen")
        widget_id = p.get("widget_id")
        if not screen or not widget_id or state.get(screen, widget_id) is None:
            return state
        remaining = tuple(widget for widget in state.by_screen[screen] if widget.id != widget_id)
        return _with_screen(state, screen, remaining)

    if t is IntentType.SET_WIDGETS:
        screen = p.get("screen")
        widgets = p.get("widgets")
        if not screen or widgets is None:
            return state
        collected: list[Widget] = []
        seen: set[str] = set()
        for widget in widgets:
            if not isinstance(widget, Widget) or widget.id in seen:
                continue
            seen.add(widget.id)
            collected.append(widget if widget.screen == screen else replace(widget, screen=screen))
        return _with_screen(state, screen, tuple(collected))

    if t is IntentType.UPDATE_WIDGET_SIZE:
        size = _parse_size(p.get("size"))
        if size is None:
            logger.debug("Ignoring unknown widget size %r", p.get("size"))
            return state
        return _update_one(state, p.get("screen"), p.get("widget_id"), size=size)

    if t is IntentType.UPDATE_WIDGET_DATA:
        if "data" not in p:
            return state
        return _update_one(state, p.get("screen"), p.get("widget_id"), data=p["data"])

    if t is IntentType.UPDATE_WIDGET_LAYOUT:
        layout = p.get("layout")
        if not isinstance(layout, WidgetLayout):
            return state
        return _update_one(state, p.get("screen"), p.get("widget_id"), layout=layout)

    return state


def list_widgets(state: WidgetsState, screen: str) -> tuple[Widget, ...]:
    """Widgets on `screen` in insertion order (empty for unknown screens)."""
    return state.by_screen.get(screen, ())


# --- Operation helpers ---


def add_widget(state: WidgetsState, screen: str, widget: Widget) -> WidgetsState:
    return reduce_widgets(state, Intent(IntentType.ADD_WIDGET, {"screen": screen, "widget": widget}))


def remove_widget(state: WidgetsState, screen: str, widget_id: str) -> WidgetsState:
    return reduce_widgets(state, Intent(IntentType.REMOVE_WIDGET, {"screen": screen, "widget_id": widget_id}))


def update_widget_size(state: WidgetsState, screen: str, widget_id: str, size: WidgetSize | str) -> WidgetsState:
    return reduce_widgets(
        state,
        Intent(IntentType.UPDATE_WIDGET_SIZE, {"screen": screen, "widget_id": widget_id, "size": size}),
    )


def update_widget_data(state: WidgetsState, screen: str, widget_id: str, data: object) -> WidgetsState:
    return reduce_widgets(
        state,
        Intent(IntentType.UPDATE_WIDGET_DATA, {"screen": screen, "widget_id": widget_id, "data": data}),
    )
