"""
                Group Lunch Order

Office group-ordering service: pick a restaurant, open an ordering
window with a deadline, collect everyone's items on one shared summary.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
