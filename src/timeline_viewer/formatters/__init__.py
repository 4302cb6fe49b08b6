"""Timeline formatters."""

from timeline_viewer.formatters.timeline_json import render_timeline_json, view_to_dict
from timeline_viewer.formatters.timeline_pretty import render_timeline_pretty

__all__ = ["render_timeline_json", "render_timeline_pretty", "view_to_dict"]
