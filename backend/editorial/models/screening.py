from typing import Optional

from pydantic import BaseModel


class ScreeningChecklist(BaseModel):
    """编辑助理初筛清单：四项全部通过才进入副编辑分配"""

    file_completeness: bool = False
    plagiarism_check: bool = False
    format_compliance: bool = False
    ethical_compliance: bool = False
    notes: Optional[str] = None

    @property
    def passed(self) -> bool:
        return all(
            (
                self.file_completeness,
                self.plagiarism_check,
                self.format_compliance,
                self.ethical_compliance,
            )
        )

    def failed_checks(self) -> list[str]:
        return [
            name
            for name in ("file_completeness", "plagiarism_check", "format_compliance", "ethical_compliance")
            if not getattr(self, name)
        ]


class ScreeningResult(BaseModel):
    passed: bool
    next_status: str
    message: str
