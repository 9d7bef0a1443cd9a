"""ابزار مدیریت فهرست اعضای انجمن و تطبیق جابه‌جایی کلاس‌ها."""

__version__ = "1.0.0"
