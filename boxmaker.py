#!/usr/bin/env python3
# Copyright (C) 2026  Lesco Design & Mfg. Co., Inc.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""
Box Maker — Notched (Finger-Joint) Box Layout for Laser Cutting
================================================================
Computes the flat pattern of a closed six-panel box whose edges interlock
with alternating fingers, and draws it on a single vector page.

Architecture
------------
  plan_notches()       Odd notch count and exact pitch for one box axis.
  edge_segments()      Rails and connectors of one notched edge
                         (horizontal or vertical, kerf-compensated).
  plan_layout()        Page size, six panel origins and the 24 edge
                         requests of the unfolded "cross" layout.
  render()             Validate → plan → draw onto a DrawingSurface.
  SVGSurface           svgwrite backend (captions as fontTools outlines).
  PDFSurface           reportlab backend (points, 72 per inch).
  DXFSurface           ezdxf backend (millimetres, CUT / TEXT layers).

Page layout (y grows upward, origin bottom-left)
------------------------------------------------
                   ----------
                   |  w x d |   top
                   ----------
                   ----------
                   |  w x h |   front
                   ----------
        ---------  ----------  ---------
        | d x h |  |  w x d |  | d x h |   left / bottom / right
        ---------  ----------  ---------
                   ----------
                   |  w x h |   back
                   ----------

Usage
-----
    python boxmaker.py box.svg 100 60 40 3 0.2 10
    python boxmaker.py box.pdf 4 2.5 2 0.125 0.008 0.5 --inches
    python boxmaker.py box.dxf 100 60 40 3 0.2 10 --bounding-box

Dependencies
------------
    svgwrite, fonttools, reportlab, ezdxf
"""

import configparser
import contextlib
import math
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Tuple

import ezdxf
import svgwrite
from ezdxf import units as dxf_units
from fontTools.pens.svgPathPen import SVGPathPen
from fontTools.pens.transformPen import TransformPen
from fontTools.ttLib import TTFont, TTLibError
from reportlab.lib.colors import HexColor
from reportlab.pdfgen import canvas

__version__ = "1.0.0"
APP_NAME = "BoxMaker"

MM_PER_INCH = 25.4
DPI = 72.0            # page units per inch of the PDF backend
BASE_MARGIN = 0.5     # mm, gap between panels before kerf clearance

Trace = Callable[[str], None]


# ============================================================================
# ERRORS
# ============================================================================

class BoxMakerError(Exception):
    """Base class for every failure reported by this module."""


class InvalidDimensionError(BoxMakerError, ValueError):
    """
    A box dimension is out of range.

    Attributes
    ----------
    field : Name of the offending BoxSpec field.
    value : The rejected value.
    """

    def __init__(self, field: str, value: float, reason: str) -> None:
        super().__init__(f"Invalid {field} ({value!r}): {reason}")
        self.field = field
        self.value = value


class SurfaceIOError(BoxMakerError, OSError):
    """The drawing surface could not be opened or written."""


# ============================================================================
# CONFIGURATION
# ============================================================================

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)),
                                   'boxmaker.conf')

DEFAULT_CONFIG = {
    'cut': '#f44336',
    'text': '#0000ff',
    'stroke_width': '0.1',
    'caption_size': '4.0',
    'line_spacing': '1.2',
    'paths': '\n'.join([
        'arial.ttf',
        '/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf',
        '/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf',
        '/System/Library/Fonts/Helvetica.ttc',
        'C:\\Windows\\Fonts\\arial.ttf',
    ]),
    'default_format': 'svg',
}

CONFIG_SECTIONS = ('colors', 'dimensions', 'font', 'output')


def load_config(path: Optional[str] = None) -> configparser.ConfigParser:
    """
    Load the INI configuration, falling back to built-in defaults.

    Every key of DEFAULT_CONFIG is available from every section, so a
    missing file or a partial file is never an error.

    Parameters
    ----------
    path : Config file to read (default: boxmaker.conf next to this module).

    Returns
    -------
    ConfigParser with the sections colors, dimensions, font and output.
    """
    path = path or DEFAULT_CONFIG_PATH
    cfg = configparser.ConfigParser(defaults=DEFAULT_CONFIG)
    if os.path.exists(path):
        cfg.read(path, encoding='utf-8')
        print(f"  → Loaded config: {path}")
    else:
        print(f"  ⚠️  Config file not found ({path}), using defaults")
    for section in CONFIG_SECTIONS:
        if not cfg.has_section(section):
            cfg.add_section(section)
    return cfg


CFG = load_config()


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class BoxSpec:
    """
    Requested box, all lengths in millimetres.

    Attributes
    ----------
    width, height, depth : Outside dimensions of the box.
    thickness            : Material thickness (finger depth).
    cut_width            : Laser kerf, the width of material the beam removes.
    notch_length         : Target finger length; the real pitch per axis
                           is derived from it.
    """

    width: float
    height: float
    depth: float
    thickness: float
    cut_width: float
    notch_length: float

    @property
    def min_dimension(self) -> float:
        return min(self.width, self.height, self.depth)

    def validate(self) -> None:
        """Raise InvalidDimensionError for the first out-of-range field."""
        for name in ('width', 'height', 'depth', 'thickness', 'notch_length'):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise InvalidDimensionError(name, value, "must be a positive number")
        if not (math.isfinite(self.cut_width) and self.cut_width >= 0):
            raise InvalidDimensionError('cut_width', self.cut_width,
                                        "must be zero or a positive number")
        if self.notch_length <= self.cut_width:
            raise InvalidDimensionError('notch_length', self.notch_length,
                                        f"must be longer than the cut width ({self.cut_width})")
        shortest = self.min_dimension + self.cut_width
        if self.notch_length >= shortest:
            raise InvalidDimensionError('notch_length', self.notch_length,
                                        f"must be shorter than the smallest box side "
                                        f"including kerf ({shortest})")


@dataclass(frozen=True)
class AxisNotchPlan:
    """Notch count and exact pitch for one box axis."""

    count: int
    pitch: float

    @property
    def length(self) -> float:
        """Kerf-inflated axis length covered by the notches."""
        return self.count * self.pitch


class Orientation(Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclass(frozen=True)
class EdgeDrawRequest:
    """
    Everything needed to draw one notched edge.

    Attributes
    ----------
    orientation : Running direction of the edge.
    x0, y0      : Edge origin in mm (lower-left corner of the edge band).
    pitch       : Length of one notch along the edge.
    count       : Number of notches (odd).
    thickness   : Material thickness, the depth of the notches.
    half_kerf   : Signed half cut width added at tooth boundaries.
    flip        : False when the first rail sits at the base offset.
    smallside   : Start (and for vertical edges, end) one thickness in so
                  the rail clears the perpendicular wall.
    """

    orientation: Orientation
    x0: float
    y0: float
    pitch: float
    count: int
    thickness: float
    half_kerf: float
    flip: bool
    smallside: bool


RAIL = "rail"
CONNECTOR = "connector"


@dataclass(frozen=True)
class Segment:
    x0: float
    y0: float
    x1: float
    y1: float
    kind: str = RAIL


# ============================================================================
# NOTCH PLANNER
# ============================================================================

def closest_odd_to(value: float) -> int:
    """
    Round half up, then step down to an odd number (never below 1).

    An odd count keeps the first and last notch of an edge in the same
    phase, which the edge generator relies on.
    """
    n = int(value + 0.5)
    if n % 2 == 0:
        n -= 1
    return max(1, n)


def plan_notches(axis_length: float, kerf: float, notch_length: float) -> AxisNotchPlan:
    """
    Derive the notch count and pitch for one axis.

    The axis is inflated by the kerf so that the cut part comes out at the
    requested size, then divided into the odd number of notches closest
    to *notch_length*.

    Parameters
    ----------
    axis_length  : Nominal box dimension along this axis (mm).
    kerf         : Cut width (mm).
    notch_length : Target notch length (mm).

    Returns
    -------
    AxisNotchPlan whose count × pitch equals axis_length + kerf.
    """
    length = axis_length + kerf
    count = closest_odd_to(length / notch_length)
    return AxisNotchPlan(count=count, pitch=length / count)


# ============================================================================
# PANEL EDGE GENERATOR
# ============================================================================

def tooth_is_outward(step: int, flip: bool) -> bool:
    """True when rail *step* sits at the base offset of its edge."""
    return (step % 2 == 0) != flip


def edge_phases(count: int, flip: bool) -> List[bool]:
    return [tooth_is_outward(step, flip) for step in range(count)]


def _to_page(orientation: Orientation, u0: float, v0: float,
             u1: float, v1: float, kind: str) -> Segment:
    # u runs along the edge, v across it
    if orientation is Orientation.HORIZONTAL:
        return Segment(u0, v0, u1, v1, kind)
    return Segment(v0, u0, v1, u1, kind)


def edge_segments(request: EdgeDrawRequest) -> List[Segment]:
    """
    Build the line segments of one notched edge.

    The edge is walked in its own frame (u along, v across) and mapped to
    page coordinates at the end, so horizontal and vertical edges share
    the same rules:

    * rail *step* sits at v0 when tooth_is_outward(step, flip), else at
      v0 + thickness;
    * the first rail runs from u (u + thickness on a small side) to
      u + pitch + half_kerf;
    * the last rail runs from u − half_kerf to u + pitch − thickness.
      Vertical edges keep their full length unless *smallside*, since the
      far horizontal edge of every panel already sits one thickness in;
    * even interior rails grow by half_kerf at both ends, odd ones shrink;
    * after every rail but the last a connector spans v0 + thickness → v0
      at the shifted tooth boundary.

    Returns
    -------
    ``count`` rails and ``count − 1`` connectors, in drawing order.
    """
    p = request.pitch
    t = request.thickness
    hk = request.half_kerf
    if request.orientation is Orientation.HORIZONTAL:
        u, v0 = request.x0, request.y0
        trim_end = True
    else:
        u, v0 = request.y0, request.x0
        trim_end = request.smallside
    last = request.count - 1

    segments: List[Segment] = []
    for step in range(request.count):
        v = v0 if tooth_is_outward(step, request.flip) else v0 + t

        if step == 0:
            start = u + t if request.smallside else u
            end = u + p + hk
        elif step == last:
            start = u - hk
            end = u + p - t if trim_end else u + p
        elif step % 2 == 0:
            start, end = u - hk, u + p + hk
        else:
            start, end = u + hk, u + p - hk
        segments.append(_to_page(request.orientation, start, v, end, v, RAIL))

        if step < last:
            c = u + p + hk if step % 2 == 0 else u + p - hk
            segments.append(_to_page(request.orientation, c, v0 + t, c, v0, CONNECTOR))

        u += p
    return segments


def draw_edge(surface: "DrawingSurface", request: EdgeDrawRequest,
              trace: Optional[Trace] = None) -> int:
    """Draw one edge onto *surface*; returns the number of segments drawn."""
    if trace:
        side = "Horizontal" if request.orientation is Orientation.HORIZONTAL else "Vertical"
        trace(f"{side} side: {request.count} steps @ ( {request.x0:.3f} , {request.y0:.3f} )")
    segments = edge_segments(request)
    for seg in segments:
        _draw_line_mm(surface, seg.x0, seg.y0, seg.x1, seg.y1, trace)
    return len(segments)


# ============================================================================
# LAYOUT PLANNER
# ============================================================================

SIDES = ("top", "bottom", "left", "right")
FAR_SIDES = frozenset(("bottom", "right"))

# side -> (flip, sign of half kerf).  Walls are the four panels around the
# vertical axis, caps close the box and are drawn with small sides.
WALL_EDGES = {"top": (False, 1), "bottom": (True, 1), "left": (False, 1), "right": (False, -1)}
CAP_EDGES = {"top": (True, -1), "bottom": (False, -1), "left": (True, -1), "right": (False, -1)}

# Physical seams of the assembled box; every edge appears exactly once.
SEAMS = (
    (("back", "bottom"), ("bottom", "top")),
    (("bottom", "bottom"), ("front", "top")),
    (("front", "bottom"), ("top", "top")),
    (("top", "bottom"), ("back", "top")),
    (("back", "left"), ("left", "right")),
    (("left", "left"), ("front", "right")),
    (("front", "left"), ("right", "right")),
    (("right", "left"), ("back", "right")),
    (("left", "bottom"), ("bottom", "left")),
    (("right", "bottom"), ("bottom", "right")),
    (("left", "top"), ("top", "left")),
    (("right", "top"), ("top", "right")),
)


@dataclass(frozen=True)
class PanelPlacement:
    """
    One panel of the layout.

    Attributes
    ----------
    name        : back, left, bottom, right, front or top.
    x, y        : Lower-left corner on the page (mm).
    width       : Extent along x (kerf-inflated).
    height      : Extent along y (kerf-inflated).
    width_plan  : Notch plan of the horizontal edges.
    height_plan : Notch plan of the vertical edges.
    cap         : True for the bottom and top panels.
    """

    name: str
    x: float
    y: float
    width: float
    height: float
    width_plan: AxisNotchPlan
    height_plan: AxisNotchPlan
    cap: bool = False

    def edge_request(self, side: str, thickness: float, half_kerf: float) -> EdgeDrawRequest:
        flip, sign = (CAP_EDGES if self.cap else WALL_EDGES)[side]
        if side in ("top", "bottom"):
            y = self.y if side == "top" else self.y + self.height - thickness
            return EdgeDrawRequest(Orientation.HORIZONTAL, self.x, y,
                                   self.width_plan.pitch, self.width_plan.count,
                                   thickness, sign * half_kerf, flip, self.cap)
        x = self.x if side == "left" else self.x + self.width - thickness
        return EdgeDrawRequest(Orientation.VERTICAL, x, self.y,
                               self.height_plan.pitch, self.height_plan.count,
                               thickness, sign * half_kerf, flip, self.cap)


@dataclass(frozen=True)
class PanelLayout:
    """
    Result of plan_layout(): page geometry and the six panel placements.

    width, height and depth are the kerf-inflated dimensions actually
    drawn (count × pitch per axis).
    """

    spec: BoxSpec
    width: float
    height: float
    depth: float
    width_plan: AxisNotchPlan
    height_plan: AxisNotchPlan
    depth_plan: AxisNotchPlan
    margin: float
    page_width: float
    page_height: float
    panels: Tuple[PanelPlacement, ...]

    @property
    def half_kerf(self) -> float:
        return self.spec.cut_width / 2

    @property
    def pieces_width(self) -> float:
        return 2 * self.depth + self.width

    @property
    def pieces_height(self) -> float:
        return 2 * self.height + 2 * self.depth

    def panel(self, name: str) -> PanelPlacement:
        for placement in self.panels:
            if placement.name == name:
                return placement
        raise KeyError(name)

    def edge_request(self, panel: str, side: str) -> EdgeDrawRequest:
        return self.panel(panel).edge_request(side, self.spec.thickness, self.half_kerf)

    def edge_requests(self) -> Iterator[EdgeDrawRequest]:
        """The 24 edges in drawing order: per panel top, bottom, left, right."""
        for placement in self.panels:
            for side in SIDES:
                yield placement.edge_request(side, self.spec.thickness, self.half_kerf)

    def tab_pattern(self, panel: str, side: str) -> List[bool]:
        """
        Per notch, True where the edge sticks out of the panel body.

        A rail at the base offset is a tab on the top/left edges but a slot
        on the bottom/right edges, whose base sits one thickness inside.
        """
        request = self.edge_request(panel, side)
        far = side in FAR_SIDES
        return [outward != far for outward in edge_phases(request.count, request.flip)]


def plan_layout(spec: BoxSpec) -> PanelLayout:
    """
    Compute notch plans, page size and panel origins for *spec*.

    The spec is assumed valid (see BoxSpec.validate).
    """
    kerf = spec.cut_width
    width_plan = plan_notches(spec.width, kerf, spec.notch_length)
    height_plan = plan_notches(spec.height, kerf, spec.notch_length)
    depth_plan = plan_notches(spec.depth, kerf, spec.notch_length)

    w = width_plan.length
    h = height_plan.length
    d = depth_plan.length
    m = BASE_MARGIN + kerf

    panels = (
        PanelPlacement("back", d + m * 2, m, w, h, width_plan, height_plan),
        PanelPlacement("left", m, h + m * 2, d, h, depth_plan, height_plan),
        PanelPlacement("bottom", d + m * 2, h + m * 2, w, d, width_plan, depth_plan, cap=True),
        PanelPlacement("right", d + w + m * 3, h + m * 2, d, h, depth_plan, height_plan),
        PanelPlacement("front", d + m * 2, h + d + m * 3, w, h, width_plan, height_plan),
        PanelPlacement("top", d + m * 2, h * 2 + d + m * 4, w, d, width_plan, depth_plan, cap=True),
    )
    return PanelLayout(
        spec=spec, width=w, height=h, depth=d,
        width_plan=width_plan, height_plan=height_plan, depth_plan=depth_plan,
        margin=m,
        page_width=d * 2 + w + m * 4,
        page_height=h * 2 + d * 2 + m * 5,
        panels=panels,
    )


def fmt(n: float) -> str:
    return f"{n:.3f}".rstrip("0").rstrip(".")


def _display(value_mm: float, inches: bool) -> str:
    return fmt(value_mm / MM_PER_INCH) if inches else fmt(value_mm)


def layout_captions(layout: PanelLayout, specified_in_inches: bool = False,
                    produced_at: Optional[datetime] = None) -> List[str]:
    """Caption lines describing the drawn box."""
    unit = "in" if specified_in_inches else "mm"
    when = (produced_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    spec = layout.spec
    rows = [
        ("Width", layout.width),
        ("Height", layout.height),
        ("Depth", layout.depth),
        ("Thickness", spec.thickness),
        ("Notch Length", spec.notch_length),
        ("Cut Width", spec.cut_width),
    ]
    lines = [f"Produced by {APP_NAME} {__version__} on {when}"]
    lines += [f"{label} ({unit}): {_display(value, specified_in_inches)}" for label, value in rows]
    return lines


def draw_layout(surface: "DrawingSurface", layout: PanelLayout,
                draw_bounding_box: bool = False, specified_in_inches: bool = False,
                trace: Optional[Trace] = None,
                produced_at: Optional[datetime] = None) -> int:
    """
    Draw captions, the optional bounding box and all 24 edges.

    The surface must already be open.  Returns the number of edges drawn.
    """
    for text in layout_captions(layout, specified_in_inches, produced_at):
        surface.add_caption(text)

    if draw_bounding_box:
        m = layout.margin
        box_w = layout.pieces_width + m * 2
        box_h = layout.pieces_height + m * 3
        _draw_rectangle_mm(surface, m, m, m + box_w, m + box_h, trace)
        unit = "in" if specified_in_inches else "mm"
        surface.add_caption(f"Bounding box ({unit}): "
                            f"{_display(box_w, specified_in_inches)} x "
                            f"{_display(box_h, specified_in_inches)}")

    edges = 0
    for request in layout.edge_requests():
        draw_edge(surface, request, trace)
        edges += 1
    return edges


def _draw_line_mm(surface: "DrawingSurface", x0: float, y0: float,
                  x1: float, y1: float, trace: Optional[Trace] = None) -> None:
    k = surface.units_per_mm
    surface.line(x0 * k, y0 * k, x1 * k, y1 * k)
    if trace:
        trace(f" Line  - ( {x0 * k:.3f} , {y0 * k:.3f} ) to ( {x1 * k:.3f} , {y1 * k:.3f} )")


def _draw_rectangle_mm(surface: "DrawingSurface", x0: float, y0: float,
                       x1: float, y1: float, trace: Optional[Trace] = None) -> None:
    k = surface.units_per_mm
    surface.rectangle(x0 * k, y0 * k, x1 * k, y1 * k)
    if trace:
        trace(f" Box  - ( {x0 * k:.3f} , {y0 * k:.3f} ) to ( {x1 * k:.3f} , {y1 * k:.3f} )")


# ============================================================================
# DRAWING SURFACES
# ============================================================================

class DrawingSurface(Protocol):
    """
    Capabilities the renderer needs from an output backend.

    Coordinates are page units, already multiplied by ``units_per_mm``,
    with the origin at the bottom-left corner and y growing upward.
    """

    units_per_mm: float

    def open(self, page_width: float, page_height: float) -> None: ...

    def line(self, x0: float, y0: float, x1: float, y1: float) -> None: ...

    def rectangle(self, x0: float, y0: float, x1: float, y1: float) -> None: ...

    def add_caption(self, text: str) -> None: ...

    def close(self) -> None: ...

    def discard(self) -> None: ...


@contextlib.contextmanager
def open_surface(surface: DrawingSurface, page_width: float,
                 page_height: float) -> Iterator[DrawingSurface]:
    """
    Scope a surface: open it, hand it out, then close it.

    If open(), the body or close() raises, the surface is discarded so that no
    half-drawn document is left behind, and the error propagates.
    """
    try:
        surface.open(page_width, page_height)
        yield surface
        surface.close()
    except BaseException:
        surface.discard()
        raise


def _reserve_temp(path: str) -> str:
    """Create an empty sibling temp file that close() will move onto *path*."""
    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, tmp = tempfile.mkstemp(dir=directory,
                                   prefix=f".{os.path.basename(path)}.",
                                   suffix=".tmp")
    except OSError as e:
        raise SurfaceIOError(f"Cannot open '{path}' for writing: {e}") from e
    os.close(fd)
    return tmp


def _commit_temp(tmp: str, path: str) -> None:
    try:
        os.replace(tmp, path)
    except OSError as e:
        raise SurfaceIOError(f"Cannot write '{path}': {e}") from e


def _discard_temp(tmp: Optional[str]) -> None:
    if tmp:
        with contextlib.suppress(OSError):
            os.remove(tmp)


class RecordingSurface:
    """
    In-memory surface that keeps every primitive it receives.

    Useful for tests and for callers that post-process the geometry
    themselves.
    """

    def __init__(self, units_per_mm: float = 1.0) -> None:
        self.units_per_mm = units_per_mm
        self.page_size: Optional[Tuple[float, float]] = None
        self.lines: List[Tuple[float, float, float, float]] = []
        self.rectangles: List[Tuple[float, float, float, float]] = []
        self.captions: List[str] = []
        self.closed = False
        self.discarded = False

    def open(self, page_width: float, page_height: float) -> None:
        self.page_size = (page_width, page_height)

    def line(self, x0: float, y0: float, x1: float, y1: float) -> None:
        self.lines.append((x0, y0, x1, y1))

    def rectangle(self, x0: float, y0: float, x1: float, y1: float) -> None:
        self.rectangles.append((x0, y0, x1, y1))

    def add_caption(self, text: str) -> None:
        self.captions.append(text)

    def close(self) -> None:
        self.closed = True

    def discard(self) -> None:
        self.discarded = True


class SVGSurface:
    """
    Render the layout as an SVG file suitable for laser processing.

    The document is in millimetres and contains two named groups:

    =========  =======  ================================================
    Group id   Colour   Purpose
    =========  =======  ================================================
    cut_lines  red      Panel outlines and bounding box.  Laser cuts.
    captions   blue     Caption text converted to filled path outlines.
                        Laser engraves (or ignores) these.
    =========  =======  ================================================

    The y axis is flipped on output so the page reads the same way as
    the PDF rendering.  Captions are converted to outlines with fontTools
    when a font file can be found; otherwise they are written as plain
    <text> elements.
    """

    units_per_mm = 1.0

    def __init__(self, path: str,
                 config: Optional[configparser.ConfigParser] = None) -> None:
        self.path = path
        self.config = config or CFG
        self.page_width = 0.0
        self.page_height = 0.0
        self.font = None
        self.font_path: Optional[str] = None
        self._lines: List[Tuple[float, float, float, float]] = []
        self._rects: List[Tuple[float, float, float, float]] = []
        self._captions: List[str] = []
        self._tmp: Optional[str] = None

    def open(self, page_width: float, page_height: float) -> None:
        self.page_width = page_width
        self.page_height = page_height
        self._tmp = _reserve_temp(self.path)
        self._init_font()

    def _init_font(self) -> None:
        """Load the first readable font listed under [font] paths."""
        self.font = None
        self.font_path = None
        candidates = [p.strip() for p in self.config.get('font', 'paths').splitlines() if p.strip()]
        for font_path in candidates:
            if not os.path.exists(font_path):
                continue
            try:
                self.font = TTFont(font_path)
            except (OSError, TTLibError):
                continue
            self.font_path = font_path
            return

    def line(self, x0: float, y0: float, x1: float, y1: float) -> None:
        self._lines.append((x0, self.page_height - y0, x1, self.page_height - y1))

    def rectangle(self, x0: float, y0: float, x1: float, y1: float) -> None:
        top = self.page_height - max(y0, y1)
        self._rects.append((min(x0, x1), top, abs(x1 - x0), abs(y1 - y0)))

    def add_caption(self, text: str) -> None:
        self._captions.append(text)

    def tostring(self) -> str:
        """Assemble the SVG document from everything drawn so far."""
        colors = self.config['colors']
        dims = self.config['dimensions']
        stroke = dims.getfloat('stroke_width')
        size = dims.getfloat('caption_size')
        spacing = dims.getfloat('line_spacing')

        dwg = svgwrite.Drawing(size=(f"{fmt(self.page_width)}mm", f"{fmt(self.page_height)}mm"),
                               viewBox=f"0 0 {fmt(self.page_width)} {fmt(self.page_height)}")
        dwg.defs.add(dwg.style(f"""
            .cut {{ fill: none; stroke: {colors.get('cut')}; stroke-width: {stroke}; }}
            .caption {{ fill: {colors.get('text')}; stroke: none; font-family: sans-serif; font-size: {size}px; }}
        """))

        cut_lines = dwg.g(id='cut_lines')
        for x, y, w, h in self._rects:
            cut_lines.add(dwg.rect(insert=(x, y), size=(w, h), class_='cut'))
        for x0, y0, x1, y1 in self._lines:
            cut_lines.add(dwg.line(start=(x0, y0), end=(x1, y1), class_='cut'))
        dwg.add(cut_lines)

        captions = dwg.g(id='captions')
        for i, text in enumerate(self._captions):
            baseline = size * spacing * (i + 1)
            d = self._text_to_path(text, size, baseline, size)
            if d:
                captions.add(dwg.path(d=d, class_='caption'))
            else:
                captions.add(dwg.text(text, insert=(size, baseline), class_='caption'))
        dwg.add(captions)

        svg_string = dwg.tostring()
        metadata_comment = f"""
<!-- {APP_NAME} {__version__} -->
<!-- Page: {fmt(self.page_width)} x {fmt(self.page_height)} mm -->
<!-- Segments: {len(self._lines)} -->
"""
        if svg_string.startswith('<?xml'):
            xml_decl_end = svg_string.find('?>') + 2
            return svg_string[:xml_decl_end] + metadata_comment + svg_string[xml_decl_end:]
        return metadata_comment + svg_string

    def _text_to_path(self, text: str, x: float, y: float, size: float) -> str:
        """
        Left-aligned text outline starting at (x, baseline y), or "" when
        no font is loaded or no glyph produced any contour.
        """
        if not self.font or not text.strip():
            return ""
        cmap = self.font.getBestCmap()
        if not cmap:
            return ""
        glyph_set = self.font.getGlyphSet()
        scale = size / self.font['head'].unitsPerEm

        pen = SVGPathPen(glyph_set)
        current_x = x
        for char in text:
            glyph_name = cmap.get(ord(char))
            if glyph_name and glyph_name in glyph_set:
                glyph = glyph_set[glyph_name]
                # font units are y-up, SVG is y-down
                glyph.draw(TransformPen(pen, (scale, 0, 0, -scale, current_x, y)))
                current_x += glyph.width * scale
            else:
                current_x += size * 0.5
        return pen.getCommands()

    def close(self) -> None:
        svg = self.tostring()
        try:
            with open(self._tmp, 'w', encoding='utf-8') as f:
                f.write(svg)
        except OSError as e:
            raise SurfaceIOError(f"Cannot write '{self.path}': {e}") from e
        _commit_temp(self._tmp, self.path)
        self._tmp = None

    def discard(self) -> None:
        _discard_temp(self._tmp)
        self._tmp = None


class PDFSurface:
    """
    reportlab canvas in PDF points (72 per inch), origin bottom-left.

    Strokes are hairlines in the cut colour; captions are stacked from
    the top-left corner of the page.
    """

    units_per_mm = DPI / MM_PER_INCH

    def __init__(self, path: str,
                 config: Optional[configparser.ConfigParser] = None) -> None:
        self.path = path
        self.config = config or CFG
        self.page_width = 0.0
        self.page_height = 0.0
        self._canvas: Optional[canvas.Canvas] = None
        self._tmp: Optional[str] = None
        self._caption_count = 0

    def open(self, page_width: float, page_height: float) -> None:
        self.page_width = page_width
        self.page_height = page_height
        self._tmp = _reserve_temp(self.path)
        self._canvas = canvas.Canvas(self._tmp, pagesize=(page_width, page_height))
        self._canvas.setAuthor(f"{APP_NAME} {__version__}")
        self._canvas.setTitle(os.path.basename(self.path))
        self._canvas.setLineWidth(0)
        self._canvas.setStrokeColor(HexColor(self.config.get('colors', 'cut')))
        self._canvas.setFillColor(HexColor(self.config.get('colors', 'text')))
        self._caption_count = 0

    def line(self, x0: float, y0: float, x1: float, y1: float) -> None:
        self._canvas.line(x0, y0, x1, y1)

    def rectangle(self, x0: float, y0: float, x1: float, y1: float) -> None:
        self._canvas.rect(min(x0, x1), min(y0, y1), abs(x1 - x0), abs(y1 - y0),
                          stroke=1, fill=0)

    def add_caption(self, text: str) -> None:
        dims = self.config['dimensions']
        size = dims.getfloat('caption_size') * self.units_per_mm
        self._caption_count += 1
        self._canvas.setFont("Helvetica", size)
        self._canvas.drawString(size,
                                self.page_height - size * dims.getfloat('line_spacing') * self._caption_count,
                                text)

    def close(self) -> None:
        try:
            self._canvas.showPage()
            self._canvas.save()
        except OSError as e:
            raise SurfaceIOError(f"Cannot write '{self.path}': {e}") from e
        self._canvas = None
        _commit_temp(self._tmp, self.path)
        self._tmp = None

    def discard(self) -> None:
        self._canvas = None
        _discard_temp(self._tmp)
        self._tmp = None


class DXFSurface:
    """ezdxf R2010 drawing in millimetres with CUT and TEXT layers."""

    units_per_mm = 1.0

    LAYERS = {
        'CUT': 1,   # red
        'TEXT': 5,  # blue
    }

    def __init__(self, path: str,
                 config: Optional[configparser.ConfigParser] = None) -> None:
        self.path = path
        self.config = config or CFG
        self.page_width = 0.0
        self.page_height = 0.0
        self.doc = None
        self._tmp: Optional[str] = None
        self._caption_count = 0

    def open(self, page_width: float, page_height: float) -> None:
        self.page_width = page_width
        self.page_height = page_height
        self._tmp = _reserve_temp(self.path)
        self.doc = ezdxf.new('R2010')
        self.doc.units = dxf_units.MM
        for name, color in self.LAYERS.items():
            self.doc.layers.add(name, color=color)
        self._caption_count = 0

    def line(self, x0: float, y0: float, x1: float, y1: float) -> None:
        self.doc.modelspace().add_line((x0, y0), (x1, y1), dxfattribs={'layer': 'CUT'})

    def rectangle(self, x0: float, y0: float, x1: float, y1: float) -> None:
        pts = [(x0, y0), (x1, y0), (x1, y1), (x0, y1)]
        self.doc.modelspace().add_lwpolyline(pts, close=True, dxfattribs={'layer': 'CUT'})

    def add_caption(self, text: str) -> None:
        dims = self.config['dimensions']
        size = dims.getfloat('caption_size')
        self._caption_count += 1
        baseline = self.page_height - size * dims.getfloat('line_spacing') * self._caption_count
        self.doc.modelspace().add_text(text, dxfattribs={
            'layer': 'TEXT',
            'height': size,
            'insert': (size, baseline),
        })

    def close(self) -> None:
        try:
            self.doc.saveas(self._tmp)
        except OSError as e:
            raise SurfaceIOError(f"Cannot write '{self.path}': {e}") from e
        _commit_temp(self._tmp, self.path)
        self._tmp = None

    def discard(self) -> None:
        self.doc = None
        _discard_temp(self._tmp)
        self._tmp = None


SURFACES: Dict[str, type] = {
    'svg': SVGSurface,
    'pdf': PDFSurface,
    'dxf': DXFSurface,
}


def surface_for_path(path: str,
                     config: Optional[configparser.ConfigParser] = None) -> DrawingSurface:
    """
    Pick the backend from the file extension of *path*.

    A path without an extension gets the [output] default_format.
    """
    config = config or CFG
    ext = os.path.splitext(path)[1].lower().lstrip('.')
    if not ext:
        ext = config.get('output', 'default_format').lower()
        path = f"{path}.{ext}"
    try:
        surface_cls = SURFACES[ext]
    except KeyError:
        raise BoxMakerError(f"Unsupported output format '.{ext}' "
                            f"(expected one of: {', '.join(sorted(SURFACES))})") from None
    return surface_cls(path, config)


# ============================================================================
# RENDER
# ============================================================================

def render_box(spec: BoxSpec, surface: DrawingSurface,
               draw_bounding_box: bool = False, specified_in_inches: bool = False,
               trace: Optional[Trace] = None) -> PanelLayout:
    """Validate *spec*, then plan and draw it onto *surface*."""
    spec.validate()
    layout = plan_layout(spec)
    k = surface.units_per_mm
    with open_surface(surface, layout.page_width * k, layout.page_height * k) as doc:
        draw_layout(doc, layout, draw_bounding_box, specified_in_inches, trace)
    return layout


def render(output_path: Optional[str], width: float, height: float, depth: float,
           thickness: float, cut_width: float, notch_length: float,
           draw_bounding_box: bool = False, specified_in_inches: bool = False,
           *, surface: Optional[DrawingSurface] = None,
           config: Optional[configparser.ConfigParser] = None,
           trace: Optional[Trace] = None) -> PanelLayout:
    """
    Render and save a box.

    Parameters
    ----------
    output_path         : File to write; its extension selects the backend.
                          Ignored when *surface* is given.
    width, height, depth: Box dimensions in mm.
    thickness           : Material thickness in mm.
    cut_width           : Laser kerf in mm.
    notch_length        : Target notch length in mm.
    draw_bounding_box   : Also draw an outer rectangle (eases DXF import).
    specified_in_inches : Print captions in inches.
    surface             : Explicit drawing surface (overrides output_path).
    config              : Configuration for file surfaces (default CFG).
    trace               : Optional callback receiving per-edge/line diagnostics.

    Returns
    -------
    The PanelLayout that was drawn.

    Raises
    ------
    InvalidDimensionError before anything is opened, SurfaceIOError when
    the output cannot be written.
    """
    spec = BoxSpec(float(width), float(height), float(depth),
                   float(thickness), float(cut_width), float(notch_length))
    if surface is None:
        if not output_path:
            raise BoxMakerError("An output path or a drawing surface is required")
        surface = surface_for_path(output_path, config)
    return render_box(spec, surface, draw_bounding_box, specified_in_inches, trace)


# ============================================================================
# MAIN FUNCTION
# ============================================================================

def generate_box(output_path: str, width: float, height: float, depth: float,
                 thickness: float, cut_width: float, notch_length: float,
                 draw_bounding_box: bool = False, specified_in_inches: bool = False,
                 config: Optional[configparser.ConfigParser] = None,
                 trace: Optional[Trace] = None) -> str:
    """
    Full pipeline with a console report: validate → plan → draw → save.

    Returns
    -------
    Path of the written file (an extension is appended when missing).
    """
    spec = BoxSpec(float(width), float(height), float(depth),
                   float(thickness), float(cut_width), float(notch_length))

    print("=" * 70)
    print("BOX MAKER")
    print("=" * 70)
    print(f"\nBox: {fmt(spec.width)} x {fmt(spec.height)} x {fmt(spec.depth)} mm")
    print(f"Material thickness: {fmt(spec.thickness)} mm, "
          f"cut width: {fmt(spec.cut_width)} mm, "
          f"notch length: {fmt(spec.notch_length)} mm")
    print()

    spec.validate()
    layout = plan_layout(spec)

    for axis, plan in (("Width", layout.width_plan),
                       ("Height", layout.height_plan),
                       ("Depth", layout.depth_plan)):
        print(f"  → {axis}: {plan.count} notches @ {plan.pitch:.3f} mm "
              f"({fmt(plan.length)} mm with kerf)")
    smallest_pitch = min(layout.width_plan.pitch, layout.height_plan.pitch,
                         layout.depth_plan.pitch)
    if spec.thickness >= smallest_pitch:
        print(f"  ⚠️  Warning: thickness {fmt(spec.thickness)} mm is not smaller than "
              f"the smallest notch ({smallest_pitch:.3f} mm); fingers will be lost")
    print(f"  → Page: {fmt(layout.page_width)} x {fmt(layout.page_height)} mm")

    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    surface = surface_for_path(output_path, config)
    render_box(spec, surface, draw_bounding_box, specified_in_inches, trace)

    print(f"\n{'═' * 70}")
    print(f"✅ SUCCESS: Wrote {surface.path}")
    print(f"{'═' * 70}")
    return surface.path


# ============================================================================
# CLI INTERFACE
# ============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(
        description="Draw a notched (finger-joint) box for laser cutting",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python boxmaker.py box.svg 100 60 40 3 0.2 10
  python boxmaker.py box.pdf 100 60 40 3 0.2 10 --bounding-box
  python boxmaker.py box.dxf 4 2.5 2 0.125 0.008 0.5 --inches

Output format follows the file extension: .svg, .pdf or .dxf
        """
    )
    parser.add_argument("output", help="Output file path")
    parser.add_argument("width", type=float, help="Box width")
    parser.add_argument("height", type=float, help="Box height")
    parser.add_argument("depth", type=float, help="Box depth")
    parser.add_argument("thickness", type=float, help="Material thickness")
    parser.add_argument("cut_width", type=float, help="Laser cut width (kerf)")
    parser.add_argument("notch_length", type=float, help="Target notch length")
    parser.add_argument("--bounding-box", action="store_true",
                        help="Draw an outer rectangle around all panels")
    parser.add_argument("--inches", action="store_true",
                        help="Dimensions are given in inches (captions too)")
    parser.add_argument("--trace", action="store_true",
                        help="Print every edge and line as it is drawn")
    parser.add_argument("--config", metavar="PATH",
                        help="Configuration file (default: boxmaker.conf)")

    args = parser.parse_args(argv)

    scale = MM_PER_INCH if args.inches else 1.0
    config = load_config(args.config) if args.config else CFG

    try:
        generate_box(args.output,
                     args.width * scale, args.height * scale, args.depth * scale,
                     args.thickness * scale, args.cut_width * scale, args.notch_length * scale,
                     draw_bounding_box=args.bounding_box,
                     specified_in_inches=args.inches,
                     config=config,
                     trace=print if args.trace else None)
    except BoxMakerError as e:
        print(f"\n❌ Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
