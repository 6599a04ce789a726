"""dualmind - Claude と DeepSeek を組み合わせるチャットサービス"""

__version__ = "0.1.0"
