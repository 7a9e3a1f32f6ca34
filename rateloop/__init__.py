"""rateloop — 複数アカウントでのログイン・評価クリック自動化ツール。"""

__version__ = "0.1.0"
