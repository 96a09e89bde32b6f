"""
Resource path assignment.

Each embedded resource gets a name (its own, or a synthetic `embed_<n>`) and a
path built from the names of its ancestors: /outer.zip/inner.zip/file.txt.
The stack of names is passed down the recursion as a tuple, so returning from
a child restores the parent's path without any explicit pop.
"""

from .metadata import Metadata, RESOURCE_NAME, EMBEDDED_RESOURCE_PATH

SYNTHETIC_PREFIX = "embed_"
SEPARATOR = "/"

PathStack = tuple[str, ...]


class ResourcePathAssigner:
    """
    Names embedded resources and computes their paths for one traversal.

    The synthetic-name counter is global to the traversal, not per parent,
    so `embed_<n>` names never repeat inside one result list.
    """

    def __init__(self):
        self._unnamed = 0
        self._used_names: set[str] = set()
        self._used_paths: set[str] = set()

    def resource_name(self, metadata: Metadata) -> str:
        """
        Return the resource's name, assigning a synthetic one if it has none.

        Synthetic indexes whose name was already taken in this traversal
        (e.g. a resource explicitly named embed_0) are skipped.
        """
        name = metadata.get(RESOURCE_NAME)
        if name is None or not name.strip():
            name = self._next_synthetic()
            metadata.set(RESOURCE_NAME, name)
        self._used_names.add(name)
        return name

    def _next_synthetic(self) -> str:
        while True:
            candidate = f"{SYNTHETIC_PREFIX}{self._unnamed}"
            self._unnamed += 1
            if candidate not in self._used_names:
                return candidate

    def assign(self, parent: PathStack, metadata: Metadata) -> PathStack:
        """
        Name the resource, write its path key, and return its own stack.

        Args:
            parent: Stack of the resource's ancestors (empty for children of the root)
            metadata: The resource's record, updated in place

        Returns:
            The stack to pass to the resource's own children
        """
        name = self.resource_name(metadata)
        component = self._unique_component(parent, name)
        stack = parent + (component,)
        path = to_path(stack)
        self._used_paths.add(path)
        metadata.set(EMBEDDED_RESOURCE_PATH, path)
        return stack

    def _unique_component(self, parent: PathStack, name: str) -> str:
        # Duplicate sibling names get "name (2)", "name (3)", ...
        if to_path(parent + (name,)) not in self._used_paths:
            return name
        counter = 1
        while True:
            counter += 1
            candidate = f"{name} ({counter})"
            if to_path(parent + (candidate,)) not in self._used_paths:
                return candidate

    @property
    def unnamed_count(self) -> int:
        return self._unnamed


def to_path(stack: PathStack) -> str:
    return SEPARATOR + SEPARATOR.join(stack)

