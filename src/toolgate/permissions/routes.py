"""SessionRouteTree — nested permission-evaluation contexts with lock semantics.

Each route is one invocation context: the top-level user turn, a sub-agent,
or a multi-step tool call.  Locking a route freezes the rules it sees.  Once
an invocation has started evaluating permissions, later rule changes (for
example a side effect of one of its own steps) cannot loosen the rules that
govern its remaining steps.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterator
from enum import Enum

from toolgate.permissions.rules import RuleStoreSnapshot
from toolgate.permissions.store import RuleStore

logger = logging.getLogger(__name__)


class RouteType(Enum):
    """Kind of invocation context a route represents."""

    USER = "User"
    AGENT = "Agent"
    TOOL = "Tool"


class Route:
    """A node in the route tree.

    ``locked`` only ever goes from False to True; once locked, ``rules`` no
    longer changes.  Mutation happens through :class:`SessionRouteTree` only.
    """

    __slots__ = ("_id", "_parent", "_type", "_path", "_rules", "_locked", "_closed", "_children")

    def __init__(
        self,
        route_id: str,
        parent: Route | None,
        route_type: RouteType,
        rules: RuleStoreSnapshot,
        *,
        path: str | None = None,
        locked: bool = False,
    ) -> None:
        self._id = route_id
        self._parent = parent
        self._type = route_type
        self._path = path
        self._rules = rules
        self._locked = locked
        self._closed = False
        self._children: list[Route] = []

    @property
    def id(self) -> str:
        return self._id

    @property
    def parent(self) -> Route | None:
        return self._parent

    @property
    def type(self) -> RouteType:
        return self._type

    @property
    def path(self) -> str | None:
        return self._path

    @property
    def rules(self) -> RuleStoreSnapshot:
        return self._rules

    @property
    def locked(self) -> bool:
        return self._locked

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def children(self) -> tuple[Route, ...]:
        return tuple(self._children)

    def ancestors(self) -> Iterator[Route]:
        """Yield parent, grandparent, ... up to the root."""
        node = self._parent
        while node is not None:
            yield node
            node = node._parent

    def __repr__(self) -> str:
        state = "locked" if self._locked else "open"
        return f"Route(id={self._id!r}, type={self._type.value}, {state})"


class SessionRouteTree:
    """Creates, locks and tracks routes for one session.

    Creation, locking and closing are serialized by a single lock;
    :meth:`effective_rules` never takes it.
    """

    def __init__(self, store: RuleStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._routes: dict[str, Route] = {}

    @property
    def store(self) -> RuleStore:
        return self._store

    def __len__(self) -> int:
        return len(self._routes)

    def __contains__(self, route: object) -> bool:
        return isinstance(route, Route) and self._routes.get(route.id) is route

    def get(self, route_id: str) -> Route | None:
        return self._routes.get(route_id)

    def new_route(
        self,
        parent: Route | None,
        route_type: RouteType | str,
        rules: RuleStoreSnapshot | None = None,
        *,
        path: str | None = None,
    ) -> Route:
        """Create a route under *parent* (``None`` for a root).

        *rules* defaults to the parent's effective snapshot.  A child of a
        locked route is created locked on the parent's snapshot.
        """
        rtype = route_type if isinstance(route_type, RouteType) else RouteType(route_type)
        with self._lock:
            if parent is not None and self._routes.get(parent.id) is not parent:
                raise ValueError(f"Parent route {parent.id} is closed or not in this tree")

            inherit_lock = False
            if parent is not None and parent.locked:
                inherit_lock = True
                snapshot = parent.rules
            elif rules is not None:
                snapshot = rules
            else:
                snapshot = self._store.snapshot()

            route = Route(
                uuid.uuid4().hex[:12],
                parent,
                rtype,
                snapshot,
                path=path,
                locked=inherit_lock,
            )
            self._routes[route.id] = route
            if parent is not None:
                parent._children.append(route)

        logger.debug(
            "Created %s route %s (parent=%s, locked=%s)",
            rtype.value, route.id, parent.id if parent else None, inherit_lock,
        )
        return route

    def new_root(self, *, path: str | None = None) -> Route:
        """Create a top-level user route."""
        return self.new_route(None, RouteType.USER, path=path)

    def lock(self, route: Route) -> None:
        """Freeze *route* on the store's current snapshot. Idempotent."""
        with self._lock:
            if route._locked:
                return
            route._rules = self._store.snapshot()
            route._locked = True
        logger.debug("Locked route %s at snapshot v%d", route.id, route.rules.version)

    def effective_rules(self, route: Route | None) -> RuleStoreSnapshot:
        """The snapshot governing *route*: frozen if locked, else live."""
        if route is not None and route.locked:
            return route.rules
        return self._store.snapshot()

    def close(self, route: Route) -> None:
        """Destroy *route* and all its descendants."""
        with self._lock:
            stack = [route]
            while stack:
                node = stack.pop()
                stack.extend(node._children)
                node._closed = True
                self._routes.pop(node.id, None)
            if route.parent is not None and route in route.parent._children:
                route.parent._children.remove(route)
        logger.debug("Closed route %s", route.id)

    @staticmethod
    def has_non_user_ancestor_without_ignored_path(
        route: Route,
        ignore: Callable[[str], bool] | None = None,
    ) -> bool:
        """True if an ancestor is a nested, non-user context not excluded by *ignore*.

        An ancestor counts when its type is not ``User``, it has a parent of
        its own, and its path is unset or not ignored.
        """
        for ancestor in route.ancestors():
            if ancestor.type is RouteType.USER or ancestor.parent is None:
                continue
            if ancestor.path is not None and ignore is not None and ignore(ancestor.path):
                continue
            return True
        return False
