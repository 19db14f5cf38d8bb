"""層間インターフェース定義。

analysis/ display/ ingestion/ はこのパッケージの抽象クラスにのみ依存する。
counterboard/store/ の実装に直接依存してはならない。
"""
