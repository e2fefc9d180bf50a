from pathlib import Path

TESTDATA = Path(__file__).parent / "data"
