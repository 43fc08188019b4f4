"""Pydantic models for the serialized program model document.

The document is written by an external program model builder (it owns
parsing, type checking and SSA construction); iamreach only reads it.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class PositionDoc(BaseModel):
    file: str = ""
    line: int = 0
    column: int = 0


class CallSiteDoc(BaseModel):
    kind: Literal["static", "dynamic", "invoke"]
    mode: Literal["call", "go", "defer"] = "call"
    position: PositionDoc = Field(default_factory=PositionDoc)
    callee: str | None = None
    signature: str = ""
    interface: str | None = None
    method: str | None = None

    @model_validator(mode="after")
    def _check_target(self) -> CallSiteDoc:
        if self.kind == "static" and not self.callee:
            raise ValueError("static call site needs a callee")
        if self.kind == "dynamic" and not (self.callee or self.signature):
            raise ValueError("dynamic call site needs a callee or a signature")
        if self.kind == "invoke" and not (self.interface and self.method):
            raise ValueError("invoke call site needs an interface and a method")
        return self


class FunctionDoc(BaseModel):
    name: str
    short_name: str = ""
    position: PositionDoc = Field(default_factory=PositionDoc)
    synthetic: str = ""
    origin: str | None = None
    parent: str | None = None
    receiver: str | None = None
    signature: str = ""
    calls: list[CallSiteDoc] = Field(default_factory=list)
    address_taken: list[str] = Field(default_factory=list)   # function values
    types: list[str] = Field(default_factory=list)           # concrete types made


class PackageDoc(BaseModel):
    path: str
    name: str = ""
    main: bool = False
    test: bool = False
    build_tags: list[str] = Field(default_factory=list)
    functions: list[FunctionDoc] = Field(default_factory=list)


class TypeDoc(BaseModel):
    """A concrete type and its method set (method name -> function name)."""
    name: str
    methods: dict[str, str] = Field(default_factory=dict)


class InterfaceDoc(BaseModel):
    name: str
    methods: list[str] = Field(default_factory=list)


class ProgramDoc(BaseModel):
    packages: list[PackageDoc] = Field(default_factory=list)
    types: list[TypeDoc] = Field(default_factory=list)
    interfaces: list[InterfaceDoc] = Field(default_factory=list)
