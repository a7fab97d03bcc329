#!/usr/bin/env python
"""
執行 hrbonus 後端測試（可於任意目錄執行）：
    python backend/run_tests.py                   # 全部
    python backend/run_tests.py -k lifecycle      # 其餘參數原樣交給 pytest
"""
import subprocess
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parent

if __name__ == "__main__":
    args = sys.argv[1:] or ["-v", "--tb=short"]
    sys.exit(subprocess.call([sys.executable, "-m", "pytest", "tests/", *args], cwd=str(BACKEND_DIR)))
