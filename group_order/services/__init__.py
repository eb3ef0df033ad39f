"""
                        Services Module

Contains all business logic services with the hybrid architecture pattern.
Services with an external dependency have Mock (development) and Real
(production) implementations selected by ENV_MODE.

Services:
    - ordering: order summary, deadline gate, active group selection
    - catalog: stores and menus
    - groups: group windows and their orders
    - storage: store images (local directory / hosted object storage)
    - realtime: change notifications (in-process / Redis pub/sub)
    - excel_manager: menu import and file-locked summary archive
    - export: summary PDF and share link
"""

from group_order.services.excel_manager import ExcelManager

__all__ = ["ExcelManager"]
