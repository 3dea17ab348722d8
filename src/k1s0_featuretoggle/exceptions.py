"""featuretoggle ライブラリの例外型定義"""

from __future__ import annotations


class FeatureToggleError(Exception):
    """featuretoggle ライブラリのエラー基底クラス。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class FeatureToggleErrorCodes:
    """FeatureToggleError のエラーコード定数。"""

    CONFIG_ERROR: str = "CONFIG_ERROR"
    READ_FILE: str = "READ_FILE_ERROR"
    PARSE_YAML: str = "PARSE_YAML_ERROR"
    HTTP_ERROR: str = "HTTP_ERROR"
    PARSE_ERROR: str = "PARSE_ERROR"
    VALIDATION: str = "VALIDATION_ERROR"
    NOT_STARTED: str = "NOT_STARTED"
