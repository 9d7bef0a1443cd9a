"""قراردادهای مشترک Core: انواع داده، کدهای دلیل، قواعد کد کلاس و خطاها."""
