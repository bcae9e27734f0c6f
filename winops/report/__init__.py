"""
HTML report generation for winops.

Renders self-contained HTML files (inline CSS, no external assets) that can
be mailed or dropped on a file share.
"""

from winops.report.html import generate_audit_report, generate_disk_report

__all__ = ["generate_audit_report", "generate_disk_report"]
