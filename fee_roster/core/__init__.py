"""لایهٔ Core: منطق خالص تطبیق فهرست کلاس، بدون I/O و بدون logging."""
