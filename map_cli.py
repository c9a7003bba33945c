#!/usr/bin/env python3
"""
Command line for inspecting and maintaining a map data file.

Examples:
    python map_cli.py new vault/map-data.json cave-1 --type hex --name "Cave"
    python map_cli.py info vault/map-data.json cave-1
    python map_cli.py resize vault/map-data.json cave-1 --max-col 20 --max-row 16 --yes
    python map_cli.py fog vault/map-data.json cave-1 fill --layer layer-1a2b3c4d5e6f
    python map_cli.py bounds-from-image maps/cave.png --density dense --orientation pointy
"""

import argparse
import logging
import sys
from pathlib import Path

from editor import MapEditor
from errors import MapCoreError
from geometry import HexBounds, HexOrientation, MapType
from image_bounds import (
    CUSTOM_DENSITY, DEFAULT_DENSITY, GRID_DENSITY_PRESETS, BackgroundImage,
    bounds_from_image, probe_image_dimensions,
)
from map_store import MapStore

logger = logging.getLogger(__name__)


def _open_editor(args) -> MapEditor:
    store = MapStore(args.data_file)
    if not store.has_map(args.map_id):
        raise MapCoreError(f"Map {args.map_id} not found in {args.data_file}")
    return MapEditor(store.load_map(args.map_id), store=store)


def cmd_new(args):
    store = MapStore(args.data_file)
    if store.has_map(args.map_id):
        raise MapCoreError(f"Map {args.map_id} already exists in {args.data_file}")
    doc = store.load_map(args.map_id, name=args.name, map_type=MapType(args.type))
    store.save_map(doc)
    print(f"Created {doc.map_type.value} map '{doc.id}' in {args.data_file}")
    if doc.is_hex:
        print(f"  Bounds: {doc.hex_bounds.max_col} x {doc.hex_bounds.max_row}")


def cmd_info(args):
    doc = _open_editor(args).doc
    print(f"Map: {doc.id} ({doc.name or 'unnamed'})")
    print(f"  Type: {doc.map_type.value}")
    if doc.is_hex:
        print(f"  Orientation: {doc.orientation.value}, hex size {doc.cell_size}")
        print(f"  Bounds: {doc.hex_bounds.max_col} x {doc.hex_bounds.max_row}")
        if doc.background_image and doc.background_image.path:
            print(f"  Background: {doc.background_image.path}")
    else:
        print(f"  Grid size: {doc.cell_size}")
    print(f"  North: {doc.north_direction} deg, zoom {doc.view.zoom}")
    print("\nLayers (top first):")
    for layer in reversed(doc.layers):
        active = " *" if layer.id == doc.active_layer_id else ""
        fog = layer.fog
        fog_text = "off"
        if fog.initialized:
            fog_text = f"{fog.cell_count} cells, {'shown' if fog.enabled else 'hidden'}"
        print(f"  [{layer.order}] {layer.name} ({layer.id}){active}")
        print(f"      {len(layer.cells)} cells, {len(layer.objects)} objects, "
              f"{len(layer.text_labels)} labels, fog: {fog_text}")


def cmd_resize(args):
    editor = _open_editor(args)
    report = editor.resize_hex_bounds(HexBounds(args.max_col, args.max_row))
    if report.applied:
        print(f"Resized to {args.max_col} x {args.max_row}")
    elif args.yes:
        print(report.describe())
        editor.confirm_resize()
        print("Orphaned content deleted")
    else:
        print(report.describe())
        print("Not resized (use --yes to delete the orphaned content)")
        editor.decline_resize()
        return 1
    editor.save()
    return 0


def cmd_fog(args):
    editor = _open_editor(args)
    layer_id = args.layer or editor.doc.active_layer_id
    actions = {
        "fill": editor.fog.fill_all,
        "clear": editor.fog.clear_all,
        "enable": lambda layer: editor.fog.set_enabled(True, layer),
        "disable": lambda layer: editor.fog.set_enabled(False, layer),
    }
    changed = actions[args.action](layer_id)
    if changed is None:
        print("Fog unchanged")
        return
    editor.save()
    summary = editor.fog.summary(layer_id)
    print(f"Fog on layer {layer_id}: {summary['cell_count']} cells, "
          f"{'enabled' if summary['enabled'] else 'disabled'}")


def cmd_bounds_from_image(args):
    width, height = probe_image_dimensions(args.image)
    image = BackgroundImage(
        path=str(args.image),
        lock_bounds=True,
        grid_density=args.density,
        custom_columns=args.columns,
    )
    orientation = HexOrientation(args.orientation)
    bounds = bounds_from_image(width, height, image, orientation)
    calc = image.calculate_grid(width, height, orientation)
    print(f"Image: {args.image} ({width} x {height} px)")
    print(f"  Hex size: {calc.hex_size:.2f}")
    print(f"  max_col: {bounds.max_col}")
    print(f"  max_row: {bounds.max_row}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Inspect and maintain a map data file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    new = subparsers.add_parser('new', help='Create an empty map')
    new.add_argument('data_file', type=Path, help='Path to the map data JSON file')
    new.add_argument('map_id', help='Id of the new map')
    new.add_argument('--name', default='', help='Display name')
    new.add_argument('--type', choices=[t.value for t in MapType], default=MapType.GRID.value,
                     help='Map type (default: grid)')
    new.set_defaults(func=cmd_new)

    info = subparsers.add_parser('info', help='Show a map summary')
    info.add_argument('data_file', type=Path)
    info.add_argument('map_id')
    info.set_defaults(func=cmd_info)

    resize = subparsers.add_parser('resize', help='Change hex map bounds')
    resize.add_argument('data_file', type=Path)
    resize.add_argument('map_id')
    resize.add_argument('--max-col', type=int, required=True, help='Number of columns')
    resize.add_argument('--max-row', type=int, required=True, help='Number of rows')
    resize.add_argument('--yes', action='store_true',
                        help='Delete content outside the new bounds without asking')
    resize.set_defaults(func=cmd_resize)

    fog = subparsers.add_parser('fog', help='Fill, clear, enable or disable fog of war')
    fog.add_argument('data_file', type=Path)
    fog.add_argument('map_id')
    fog.add_argument('action', choices=['fill', 'clear', 'enable', 'disable'])
    fog.add_argument('--layer', help='Layer id (default: active layer)')
    fog.set_defaults(func=cmd_fog)

    image = subparsers.add_parser('bounds-from-image', help='Compute hex bounds for an image')
    image.add_argument('image', type=Path, help='Image file')
    image.add_argument('--density', choices=list(GRID_DENSITY_PRESETS) + [CUSTOM_DENSITY],
                       default=DEFAULT_DENSITY, help=f'Grid density (default: {DEFAULT_DENSITY})')
    image.add_argument('--columns', type=int, default=24, help='Columns for custom density')
    image.add_argument('--orientation', choices=[o.value for o in HexOrientation],
                       default=HexOrientation.FLAT.value)
    image.set_defaults(func=cmd_bounds_from_image)

    return parser


def main(argv=None) -> int:
    """Command-line entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(levelname)s %(name)s: %(message)s')

    try:
        result = args.func(args)
    except MapCoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return result or 0


if __name__ == "__main__":
    sys.exit(main())
