"""
cli.py

Responsibility: CLI entrypoint for makestage.

Typical session:
1) `makestage apply album.cue` -> choose a recipe, stage into `split:album.cue/`
2) edit `split:album.cue/Makefile`, then `makestage build split:album.cue` (or run make)
3) `makestage finalize split:album.cue` to keep the outputs,
   or `makestage abort split:album.cue` to throw the attempt away

This module should orchestrate behavior but keep concerns isolated:
- Configuration: `config.py`
- Recipe discovery: `catalog.py`
- Staging: `staging.py`; abort/finalize: `lifecycle.py`
- Make invocations: `build_tool.py`
- Recipe choice: `selector.py`
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from makestage.build_tool import BuildTool
from makestage.catalog import RecipeCatalog
from makestage.config import Config, load_config
from makestage.errors import MakestageError, RecipeNotFound
from makestage.lifecycle import Lifecycle
from makestage.selector import FixedSelector, PromptSelector, RecipeSelector
from makestage.staging import Stager, extension_of

logger = logging.getLogger("makestage")

EXIT_CANCELLED = 130


class CLIError(MakestageError):
    pass


class Cancelled(Exception):
    pass


def _config(args: argparse.Namespace) -> Config:
    return load_config(args.config, overrides={"recipes_root": args.recipes_root})


def _selector(args: argparse.Namespace) -> RecipeSelector:
    recipe = getattr(args, "recipe", None)
    return FixedSelector(recipe) if recipe else PromptSelector()


def _choose(selector: RecipeSelector, candidates: list[str], prompt: str) -> str:
    choice = selector.choose(candidates, prompt)
    if choice is None and isinstance(selector, FixedSelector):
        raise RecipeNotFound(f"No recipe `{selector.name}` among: {', '.join(candidates)}")
    if choice is None:
        raise Cancelled(prompt)
    return choice


def list_cmd(args: argparse.Namespace) -> int:
    catalog = RecipeCatalog.from_config(_config(args))
    names = catalog.list_recipes(args.ext.lstrip(".")) if args.ext else catalog.list_all()
    if not names:
        where = f" for .{args.ext.lstrip('.')} files" if args.ext else ""
        raise CLIError(f"No recipes{where} under {catalog.root}")
    for name in names:
        print(name)
    return 0


def browse_cmd(args: argparse.Namespace) -> int:
    catalog = RecipeCatalog.from_config(_config(args))
    identifiers = catalog.list_all()
    if not identifiers:
        raise CLIError(f"No recipes under {catalog.root}")
    choice = _choose(_selector(args), identifiers, "Recipe:")
    print(catalog.resolve_identifier(choice).template_path)
    return 0


def show_cmd(args: argparse.Namespace) -> int:
    catalog = RecipeCatalog.from_config(_config(args))
    template = catalog.resolve_template(args.ext.lstrip("."), args.name)
    sys.stdout.write(template.read_text(encoding="utf-8"))
    return 0


def apply_cmd(args: argparse.Namespace) -> int:
    config = _config(args)
    catalog = RecipeCatalog.from_config(config)
    source = Path(args.file)
    ext = extension_of(source)

    names = catalog.list_recipes(ext)
    if not names:
        raise RecipeNotFound(f"No recipes for .{ext} files under {catalog.root}")
    recipe = _choose(_selector(args), names, f"Recipe for {source.name}:")

    staged = Stager(config, catalog=catalog).stage(source, recipe)
    print(staged.path)
    return 0


def build_cmd(args: argparse.Namespace) -> int:
    config = _config(args)
    lifecycle = Lifecycle(config)
    staged = lifecycle.load(args.workdir)
    output = BuildTool.from_config(config).build(staged.path, args.target)
    if output:
        print(output)
    return 0


def status_cmd(args: argparse.Namespace) -> int:
    status = Lifecycle(_config(args)).status(args.workdir)
    print(json.dumps(status, indent=2))
    return 0


def abort_cmd(args: argparse.Namespace) -> int:
    restored = Lifecycle(_config(args)).abort(args.workdir)
    print(restored)
    return 0


def finalize_cmd(args: argparse.Namespace) -> int:
    promoted = Lifecycle(_config(args)).finalize(args.workdir, allow_empty=bool(args.allow_empty))
    for path in promoted:
        print(path)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="makestage", description="Run Makefile recipes on files in a staging directory")
    p.add_argument("--config", default=None, help="YAML config file (default: $MAKESTAGE_CONFIG or ~/.config/makestage/config.yaml)")
    p.add_argument("--recipes-root", default=None, help="Recipes directory (overrides config and $MAKESTAGE_RECIPES)")
    p.add_argument("-v", "--verbose", action="store_true", help="Log every file move and make invocation")
    sub = p.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("list", help="List recipes for an extension, or all recipes as ext-name")
    ls.add_argument("ext", nargs="?", default=None, help="File extension, e.g. cue")
    ls.set_defaults(func=list_cmd)

    br = sub.add_parser("browse", help="Pick any recipe and print its template path")
    br.set_defaults(func=browse_cmd)

    sh = sub.add_parser("show", help="Print a recipe's build script template")
    sh.add_argument("ext", help="File extension, e.g. cue")
    sh.add_argument("name", help="Recipe name")
    sh.set_defaults(func=show_cmd)

    ap = sub.add_parser("apply", help="Stage a file into a working directory with a recipe")
    ap.add_argument("file", help="File to transform")
    ap.add_argument("--recipe", default=None, help="Recipe name (prompt when omitted)")
    ap.set_defaults(func=apply_cmd)

    bd = sub.add_parser("build", help="Run make in a staged working directory")
    bd.add_argument("workdir", nargs="?", default=".", help="Working directory (default: current directory)")
    bd.add_argument("--target", default=None, help="Make target (default: the Makefile's default goal)")
    bd.set_defaults(func=build_cmd)

    st = sub.add_parser("status", help="Show whether a directory is staged, and from what")
    st.add_argument("workdir", nargs="?", default=".", help="Working directory (default: current directory)")
    st.set_defaults(func=status_cmd)

    ab = sub.add_parser("abort", help="Restore the original layout and delete the working directory")
    ab.add_argument("workdir", nargs="?", default=".", help="Working directory (default: current directory)")
    ab.set_defaults(func=abort_cmd)

    fi = sub.add_parser("finalize", help="Promote declared outputs next to the original, then abort")
    fi.add_argument("workdir", nargs="?", default=".", help="Working directory (default: current directory)")
    fi.add_argument("--allow-empty", action="store_true", help="Clean up even when no outputs are declared")
    fi.set_defaults(func=finalize_cmd)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return int(args.func(args))
    except Cancelled:
        print("makestage: cancelled", file=sys.stderr)
        return EXIT_CANCELLED
    except MakestageError as e:
        logger.debug("command failed", exc_info=True)
        print(f"makestage: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
