# reconcile/models.py - data shapes shared by the parser, executor and orchestrator

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ParsedFile(BaseModel):
    content: str
    complete: bool = True
    suspicious: bool = False


class ParsedResponse(BaseModel):
    """Everything extracted from one AI turn. Produced by parse(), never persisted."""
    files: Dict[str, ParsedFile] = Field(default_factory=dict)
    commands: List[str] = Field(default_factory=list)
    packages: List[str] = Field(default_factory=list)
    explanation: str = ''
    structure: Optional[str] = None
    template: str = ''

    def file_paths(self) -> List[str]:
        return list(self.files.keys())


class EditInstruction(BaseModel):
    targetFile: str
    instructions: str = ''
    updateSnippet: str


class EditResult(BaseModel):
    success: bool
    normalizedPath: Optional[str] = None
    content: Optional[str] = None
    error: Optional[str] = None


class ReconciliationResult(BaseModel):
    filesCreated: List[str] = Field(default_factory=list)
    filesUpdated: List[str] = Field(default_factory=list)
    packagesInstalled: List[str] = Field(default_factory=list)
    packagesAlreadyInstalled: List[str] = Field(default_factory=list)
    packagesFailed: List[str] = Field(default_factory=list)
    commandsExecuted: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    missingImports: List[str] = Field(default_factory=list)


class CommandResult(BaseModel):
    stdout: str = ''
    stderr: str = ''
    exitCode: int = 0

    @property
    def success(self) -> bool:
        return self.exitCode == 0


class SandboxInfo(BaseModel):
    id: str
    url: str


class FileCacheEntry(BaseModel):
    content: str
    lastModified: int
