"""VB100 Results - monthly test result grading and snapshot lock service"""

__version__ = "1.0.0"
