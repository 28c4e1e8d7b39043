"""Command line front end for a mindspace workspace.

Every command opens the workspace, applies one operation and closes it
again, so the store on disk always holds the result. Errors recorded by
the workspace are printed to stderr and turn into exit status 1.
"""

from __future__ import annotations

import argparse
import locale
import logging
import sys
from pathlib import Path
from typing import Optional

from mindspace import __version__
from mindspace.backup import export_archive, import_archive, verify_archive, verify_local
from mindspace.errors import MindspaceError
from mindspace.export import MindMapExporter, get_export_dir
from mindspace.icons import list_borders, list_themes
from mindspace.registry import SortMode
from mindspace.workspace import Workspace, build_url

logger = logging.getLogger(__name__)

EXPORT_SUFFIXES = {"text": ".txt", "markdown": ".md", "png": ".png", "pdf": ".pdf"}


def _open(args: argparse.Namespace) -> Workspace:
    url = args.url
    if args.id is not None:
        url = build_url(args.id)
    ws = Workspace.open(args.db, url=url)
    if ws.last_error is not None:
        # Startup recovered from it; report but do not fail the command.
        print(f"warning: {ws.last_error}", file=sys.stderr)
        ws.last_error = None
    return ws


def _finish(ws: Workspace) -> int:
    ws.close()
    if ws.last_error is not None:
        print(f"error: {ws.last_error}", file=sys.stderr)
        return 1
    return 0


# ==================== Map Commands ====================

def _cmd_list(args: argparse.Namespace) -> int:
    ws = _open(args)
    for item in ws.sidebar_items:
        marker = item.icon or " "
        toggle = item.toggle or " "
        print(f"{marker} {'  ' * item.depth}{toggle} {item.name}  [{item.map_id}]")
    return _finish(ws)


def _cmd_show(args: argparse.Namespace) -> int:
    ws = _open(args)
    meta = ws.registry.get(ws.current_map_id)
    if args.header:
        print(f"# {meta.name} [{meta.id}]")
    print(ws.copy_text())
    return _finish(ws)


def _cmd_new(args: argparse.Namespace) -> int:
    ws = _open(args)
    if args.parent is not None:
        meta = ws.add_child_map(args.parent)
        if meta is not None and args.name:
            ws.rename_map(meta.id, args.name)
    else:
        meta = ws.create_new(name=args.name or "")
    if meta is not None:
        print(f"Created map {meta.id}: {ws.registry.get(meta.id).name}")
        print(ws.context.url)
    return _finish(ws)


def _cmd_open(args: argparse.Namespace) -> int:
    ws = _open(args)
    if ws.switch_to(args.map_id):
        print(ws.context.url)
    return _finish(ws)


def _cmd_rename(args: argparse.Namespace) -> int:
    ws = _open(args)
    ws.rename_map(args.map_id, args.name)
    return _finish(ws)


def _cmd_duplicate(args: argparse.Namespace) -> int:
    ws = _open(args)
    meta = ws.duplicate_map(args.map_id)
    if meta is not None:
        print(f"Created map {meta.id}: {meta.name}")
    return _finish(ws)


def _cmd_delete(args: argparse.Namespace) -> int:
    ws = _open(args)
    if ws.registry.exists(args.map_id) and not args.yes:
        name = ws.registry.get(args.map_id).name
        answer = input(f"Delete map '{name}'? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Cancelled")
            ws.close()
            return 0
    ws.delete_map(args.map_id)
    return _finish(ws)


# ==================== Node Commands ====================

def _cmd_add_node(args: argparse.Namespace) -> int:
    ws = _open(args)
    if args.sibling:
        node_id = ws.add_sibling_node(args.node, args.text)
    else:
        node_id = ws.add_node(args.node, args.text)
    if node_id is not None:
        print(node_id)
    return _finish(ws)


def _cmd_set_text(args: argparse.Namespace) -> int:
    ws = _open(args)
    ws.rename_node(args.node, args.text)
    return _finish(ws)


def _cmd_remove_node(args: argparse.Namespace) -> int:
    ws = _open(args)
    ws.delete_node(args.node)
    return _finish(ws)


# ==================== Settings ====================

def _cmd_sort(args: argparse.Namespace) -> int:
    ws = _open(args)
    if args.mode == "toggle":
        mode = ws.toggle_sort()
    else:
        ws.set_sort_mode(args.mode)
        mode = ws.sort_mode
    print(f"Sort mode: {mode.value}")
    return _finish(ws)


def _cmd_collapse(args: argparse.Namespace) -> int:
    ws = _open(args)
    if not ws.registry.exists(args.map_id):
        print(f"error: no map with id {args.map_id}", file=sys.stderr)
        ws.close()
        return 1
    if args.toggle:
        ws.toggle_collapse(args.map_id)
    else:
        ws.set_collapsed(args.map_id, not args.expand)
    return _finish(ws)


def _cmd_settings(args: argparse.Namespace) -> int:
    ws = _open(args)
    if args.format is not None:
        ws.set_copy_format(args.format)
    if args.border is not None:
        ws.set_copy_border(args.border)
    if args.sidebar_width is not None:
        ws.set_sidebar_width(args.sidebar_width)

    ctx = ws.context
    print(f"sort: {ctx.sort_mode.value}")
    print(f"format: {ctx.copy_format}")
    print(f"border: {ctx.copy_border}")
    print(f"sidebar-width: {ctx.sidebar_width}")
    return _finish(ws)


# ==================== Export & Backup ====================

def _cmd_export(args: argparse.Namespace) -> int:
    ws = _open(args)
    ws.save_current()
    map_id = ws.current_map_id
    out = args.out or str(get_export_dir() / f"mindmap-{map_id}{EXPORT_SUFFIXES[args.format]}")
    exporter = MindMapExporter(ws.gateway)
    try:
        if args.format == "text":
            exporter.export_text(map_id, out, ws.context.copy_format, ws.context.copy_border)
        elif args.format == "markdown":
            exporter.export_markdown(map_id, out)
        elif args.format == "png":
            exporter.export_png(map_id, out, ws.context.copy_format, ws.context.copy_border)
        else:
            exporter.export_pdf(map_id, out, ws.context.copy_format, ws.context.copy_border,
                                page_size=args.page_size)
    except (MindspaceError, RuntimeError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        ws.close()
        return 1
    print(f"Exported to {out}")
    return _finish(ws)


def _cmd_backup_export(args: argparse.Namespace) -> int:
    try:
        out = export_archive(Path(args.out), args.db, include_exports=args.include_exports)
    except FileNotFoundError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(f"Wrote archive: {out}")
    return 0


def _cmd_backup_import(args: argparse.Namespace) -> int:
    try:
        target = import_archive(Path(args.archive), args.db, overwrite=args.overwrite)
    except (FileNotFoundError, FileExistsError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(f"Imported into {target}")
    return 0


def _cmd_backup_verify(args: argparse.Namespace) -> int:
    if args.archive:
        return verify_archive(Path(args.archive))
    return verify_local(args.db)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mindspace", description="Multi-map mind map workspace")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db", type=Path, help="Path to the store (default: data dir)")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--url", help="Page URL; its id parameter selects the map")
    target.add_argument("--id", type=int, help="Map to act on")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("list", help="List maps").set_defaults(func=_cmd_list)

    p_show = sub.add_parser("show", help="Print the active map as text")
    p_show.add_argument("--header", action="store_true", help="Print the map name first")
    p_show.set_defaults(func=_cmd_show)

    p_new = sub.add_parser("new", help="Create a map")
    p_new.add_argument("--name", help="Map name")
    p_new.add_argument("--parent", type=int, help="Create as a child of this top-level map")
    p_new.set_defaults(func=_cmd_new)

    p_open = sub.add_parser("open", help="Make a map the active one")
    p_open.add_argument("map_id", type=int)
    p_open.set_defaults(func=_cmd_open)

    p_ren = sub.add_parser("rename", help="Rename a map")
    p_ren.add_argument("map_id", type=int)
    p_ren.add_argument("name")
    p_ren.set_defaults(func=_cmd_rename)

    p_dup = sub.add_parser("duplicate", help="Duplicate a map")
    p_dup.add_argument("map_id", type=int)
    p_dup.set_defaults(func=_cmd_duplicate)

    p_del = sub.add_parser("delete", help="Delete a map")
    p_del.add_argument("map_id", type=int)
    p_del.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    p_del.set_defaults(func=_cmd_delete)

    p_add = sub.add_parser("add-node", help="Add a node to the active map")
    p_add.add_argument("text")
    p_add.add_argument("--node", help="Parent node (or reference node with --sibling)")
    p_add.add_argument("--sibling", action="store_true", help="Insert after --node instead of under it")
    p_add.set_defaults(func=_cmd_add_node)

    p_set = sub.add_parser("set-text", help="Change the text of a node")
    p_set.add_argument("node")
    p_set.add_argument("text")
    p_set.set_defaults(func=_cmd_set_text)

    p_rm = sub.add_parser("remove-node", help="Delete a node and its subtree")
    p_rm.add_argument("node")
    p_rm.set_defaults(func=_cmd_remove_node)

    p_sort = sub.add_parser("sort", help="Set the map list sort mode")
    p_sort.add_argument("mode", choices=[m.value for m in SortMode] + ["toggle"])
    p_sort.set_defaults(func=_cmd_sort)

    p_col = sub.add_parser("collapse", help="Collapse the children of a map")
    p_col.add_argument("map_id", type=int)
    mode = p_col.add_mutually_exclusive_group()
    mode.add_argument("--expand", action="store_true", help="Expand instead")
    mode.add_argument("--toggle", action="store_true", help="Flip the current state")
    p_col.set_defaults(func=_cmd_collapse)

    p_cfg = sub.add_parser("settings", help="Show or change display settings")
    p_cfg.add_argument("--format", choices=list_themes(), help="Copy format (icon theme)")
    p_cfg.add_argument("--border", choices=list_borders(), help="Border style")
    p_cfg.add_argument("--sidebar-width", type=float, help="Map list width in pixels")
    p_cfg.set_defaults(func=_cmd_settings)

    p_exp = sub.add_parser("export", help="Export the active map")
    p_exp.add_argument("format", choices=list(EXPORT_SUFFIXES))
    p_exp.add_argument("--out", help="Output path (default: exports folder)")
    p_exp.add_argument("--page-size", default="A4", choices=list(MindMapExporter.PAGE_SIZES))
    p_exp.set_defaults(func=_cmd_export)

    p_bak = sub.add_parser("backup", help="Archive or restore the whole store")
    bak = p_bak.add_subparsers(dest="backup_cmd", required=True)

    b_exp = bak.add_parser("export", help="Write a backup archive")
    b_exp.add_argument("--out", required=True, help="Output .tar.gz path")
    b_exp.add_argument(
        "--include-exports",
        action="store_true",
        help="Also include the exports folder",
    )
    b_exp.set_defaults(func=_cmd_backup_export)

    b_imp = bak.add_parser("import", help="Restore a backup archive")
    b_imp.add_argument("--archive", required=True, help="Input .tar.gz path")
    b_imp.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace an existing store (a safety copy will be kept)",
    )
    b_imp.set_defaults(func=_cmd_backup_import)

    b_ver = bak.add_parser("verify", help="Verify an archive or the local store")
    b_ver.add_argument("--archive", help="Archive to verify (default: the local store)")
    b_ver.set_defaults(func=_cmd_backup_verify)

    return parser


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        # Alphabetical map sorting follows the user's collation rules.
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error:
        logger.warning("Collation locale from the environment is not available")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
