"""
catalog.py

Responsibility: Enumerate and resolve recipes stored on disk.

Layout: `<recipes_root>/<extension>/<recipe name>/<template_name>` plus any
auxiliary files shipped alongside the template. The catalog is read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from makestage.config import Config
from makestage.errors import MissingTemplate, RecipeNotFound
from makestage.renderer import iter_recipe_files


@dataclass(frozen=True)
class Recipe:
    """A named build-script template scoped to one file extension."""

    extension: str
    name: str
    path: Path
    template_name: str = "Makefile"

    @property
    def identifier(self) -> str:
        return f"{self.extension}-{self.name}"

    @property
    def template_path(self) -> Path:
        return self.path / self.template_name

    def auxiliary_files(self) -> list[str]:
        """Relative paths of every shipped file other than the template."""
        return [
            p.relative_to(self.path).as_posix()
            for p in iter_recipe_files(self.path)
            if p != self.template_path
        ]


def split_identifier(identifier: str) -> tuple[str, str]:
    ext, sep, name = identifier.partition("-")
    if not sep or not ext or not name:
        raise RecipeNotFound(f"Not a recipe identifier (expected `ext-name`): {identifier}")
    return ext, name


@dataclass
class RecipeCatalog:
    root: Path
    template_name: str = "Makefile"

    def __post_init__(self) -> None:
        self.root = Path(self.root).expanduser()

    @classmethod
    def from_config(cls, config: Config) -> "RecipeCatalog":
        return cls(root=config.recipes_root, template_name=config.template_name)

    def _subdirs(self, path: Path) -> list[str]:
        if not path.is_dir():
            return []
        return sorted(p.name for p in path.iterdir() if p.is_dir() and not p.name.startswith("."))

    def extensions(self) -> list[str]:
        return self._subdirs(self.root)

    def list_recipes(self, ext: str) -> list[str]:
        """Recipe names for `ext`; empty when the extension has no recipes."""
        if not ext:
            return []
        return self._subdirs(self.root / ext)

    def list_all(self) -> list[str]:
        return [f"{ext}-{name}" for ext in self.extensions() for name in self.list_recipes(ext)]

    def resolve(self, ext: str, name: str) -> Recipe:
        if not ext:
            raise RecipeNotFound(f"Recipes are chosen by file extension; `{name}` needs a file that has one")
        recipe_dir = self.root / ext / name
        if not recipe_dir.is_dir():
            raise RecipeNotFound(f"No recipe `{name}` for .{ext} files under {self.root}")
        recipe = Recipe(extension=ext, name=name, path=recipe_dir, template_name=self.template_name)
        if not recipe.template_path.is_file():
            raise MissingTemplate(f"Recipe `{recipe.identifier}` has no {self.template_name}: {recipe_dir}")
        return recipe

    def resolve_template(self, ext: str, name: str) -> Path:
        return self.resolve(ext, name).template_path

    def resolve_identifier(self, identifier: str) -> Recipe:
        return self.resolve(*split_identifier(identifier))

    def __contains__(self, identifier: str) -> bool:
        try:
            self.resolve_identifier(identifier)
        except RecipeNotFound:
            return False
        return True
