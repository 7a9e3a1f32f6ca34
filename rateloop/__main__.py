"""
rateloop CLI エントリポイント

python -m rateloop で CLI を起動する。

使用例:
  python -m rateloop run --credentials credentials.json
  python -m rateloop clean --days 7
"""

from .cli import app

app()
