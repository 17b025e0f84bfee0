"""ジョブ（CLI から起動する処理単位）。"""
