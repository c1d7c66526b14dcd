"""
RecordRoom - browser session telemetry capture and replay

Records what happened inside a browser tab and plays it back:
- Console, network, breadcrumb and rrweb streams stored per record
- Cursor-paginated timeline across all streams
- Chrome DevTools Protocol replay (immediate, timed or clock-gated)
- Live feed of notable events for operators
"""

__version__ = "0.1.0"
