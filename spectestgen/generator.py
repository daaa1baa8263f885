"""Directive-stream traversal that turns one script into one pytest module."""

import logging
from collections.abc import Callable, Iterable
from enum import Enum

from spectestgen.emitters import (
    arithmetic_nan_return_type,
    canonical_nan_return_type,
    command_name,
    render_compile_failure_test,
    render_header,
    render_invoke,
    render_line_marker,
    render_module_fixture,
    render_module_test,
    render_start_call,
    render_trap_test,
    return_assertion,
)
from spectestgen.errors import GenerationError
from spectestgen.models import (
    Action,
    AssertExhaustion,
    AssertInvalid,
    AssertMalformed,
    AssertReturn,
    AssertReturnArithmeticNaN,
    AssertReturnCanonicalNaN,
    AssertTrap,
    AssertUninstantiable,
    AssertUnlinkable,
    Directive,
    GeneratedArtifact,
    GeneratorState,
    ModuleDefinition,
    PerformAction,
    Register,
    Value,
)

logger = logging.getLogger(__name__)

Translator = Callable[[bytes], str]


class Phase(str, Enum):
    """Lifecycle of a generator run."""

    initialized = "initialized"
    consuming = "consuming"
    finalized = "finalized"


class WastTestGenerator:
    """Consume the directives of one script and build its test module.

    Calls that cannot trap are deferred per module and flushed into a single
    ``test_module_N`` that shares one instance, so side effects of earlier
    calls stay visible to later ones. Trap assertions get their own test
    against a fresh instance.

    Args:
        filename: Logical name of the script, embedded in the header.
        translate: Renders a module binary as text for the fixtures.
        runtime_module: Import path of the runtime helper module.
    """

    def __init__(
        self, filename: str, translate: Translator, runtime_module: str = "_common"
    ):
        self.filename = filename
        self.translate = translate
        self.state = GeneratorState()
        self.phase = Phase.initialized
        self._emit(render_header(filename, runtime_module))
        self.phase = Phase.consuming

    @property
    def command_name(self) -> str:
        return command_name(self.state.command_no, self.state.last_line)

    def consume(self, directives: Iterable[Directive]) -> GeneratedArtifact:
        """Process every directive, then finalize.

        Args:
            directives: Ordered directive stream of the script.

        Returns:
            The finished artifact.
        """
        for directive in directives:
            self.step(directive)
        return self.finalize()

    def step(self, directive: Directive) -> None:
        """Process a single directive."""
        self._require_consuming()
        self.state.last_line = directive.line
        self._emit(render_line_marker(directive.line))
        self.visit_directive(directive)
        self.state.command_no += 1

    def finalize(self) -> GeneratedArtifact:
        """Flush every module still holding deferred calls and close the run.

        Returns:
            Generated source and the number of directives processed.
        """
        self._require_consuming()
        for index in range(1, self.state.last_module + 1):
            self.flush_module_calls(index)
        self.phase = Phase.finalized
        logger.debug(
            "Generated %s: %d directives, %d modules",
            self.filename,
            self.state.command_no,
            self.state.last_module,
        )
        return GeneratedArtifact(
            filename=self.filename,
            source="".join(self.state.buffer),
            command_count=self.state.command_no,
        )

    def visit_directive(self, directive: Directive) -> None:
        match directive:
            case ModuleDefinition():
                self.visit_module(directive)
            case AssertReturn():
                self.visit_assert_return(directive.action, directive.expected)
            case AssertReturnCanonicalNaN():
                self.visit_assert_return_canonical_nan(
                    directive.action, directive.expected_type
                )
            case AssertReturnArithmeticNaN():
                self.visit_assert_return_arithmetic_nan(
                    directive.action, directive.expected_type
                )
            case AssertTrap():
                self.visit_assert_trap(directive.action)
            case AssertInvalid():
                self._emit(
                    render_compile_failure_test(
                        self.command_name, "assert_invalid", directive.module
                    )
                )
            case AssertMalformed():
                self._emit(
                    render_compile_failure_test(
                        self.command_name, "assert_malformed", directive.module
                    )
                )
            case (
                AssertUninstantiable()
                | AssertExhaustion()
                | AssertUnlinkable()
                | Register()
            ):
                logger.debug(
                    "%s line %d: no test emitted for %s",
                    self.filename,
                    directive.line,
                    directive.kind,
                )
            case PerformAction():
                self.visit_perform_action(directive.action)
            case _:
                raise GenerationError(f"Unsupported directive: {directive!r}")

    def visit_module(self, directive: ModuleDefinition) -> None:
        """Close the previous module's group and open a new fixture."""
        self.flush_module_calls(self.state.last_module)
        self.state.last_module += 1
        index = self.state.last_module
        wat_text = self.translate(directive.module)
        self._emit(render_module_fixture(index, wat_text))
        start_name, start_source = render_start_call(index)
        self._emit(start_source)
        self._record_call(index, start_name)

    def visit_assert_return(self, action: Action, expected: list[Value]) -> None:
        if not self._is_invocation(action):
            return
        return_type, assertions = return_assertion(expected)
        func_name = f"{self.command_name}_action_invoke"
        self._emit(render_invoke(func_name, action, return_type, assertions))
        self._record_call(self.state.last_module, func_name)

    def visit_assert_return_canonical_nan(
        self, action: Action, expected_type: str | None
    ) -> None:
        if not self._is_invocation(action):
            return
        return_type = canonical_nan_return_type(action, expected_type)
        func_name = f"{self.command_name}_assert_return_canonical_nan"
        self._emit(
            render_invoke(func_name, action, return_type, ["assert math.isnan(result)"])
        )
        self._record_call(self.state.last_module, func_name)

    def visit_assert_return_arithmetic_nan(
        self, action: Action, expected_type: str | None
    ) -> None:
        if not self._is_invocation(action):
            return
        return_type = arithmetic_nan_return_type(action, expected_type)
        func_name = f"{self.command_name}_assert_return_arithmetic_nan"
        self._emit(
            render_invoke(func_name, action, return_type, ["assert math.isnan(result)"])
        )
        self._record_call(self.state.last_module, func_name)

    def visit_perform_action(self, action: Action) -> None:
        if not self._is_invocation(action):
            return
        func_name = f"{self.command_name}_action_invoke"
        self._emit(render_invoke(func_name, action, "None", []))
        self._record_call(self.state.last_module, func_name)

    def visit_assert_trap(self, action: Action) -> None:
        """Emit a standalone trap test; trapping calls are never grouped."""
        if not self._is_invocation(action):
            return
        func_name = f"{self.command_name}_action_invoke"
        self._emit(render_invoke(func_name, action, "None", []))
        self._emit(render_trap_test(self.command_name, self.state.last_module, func_name))

    def flush_module_calls(self, index: int) -> None:
        """Emit the grouped test for a module and forget its deferred calls."""
        calls = self.state.module_calls.pop(index, [])
        self._emit(render_module_test(index, calls))

    def _is_invocation(self, action: Action) -> bool:
        if action.kind != "invoke":
            logger.debug(
                "%s line %d: skipping %s action on %r",
                self.filename,
                self.state.last_line,
                action.kind,
                action.field,
            )
            return False
        if self.state.last_module == 0:
            raise GenerationError(
                f"{self.filename}:{self.state.last_line}: "
                f"action on {action.field!r} before any module definition"
            )
        return True

    def _record_call(self, index: int, func_name: str) -> None:
        self.state.module_calls.setdefault(index, []).append(func_name)

    def _require_consuming(self) -> None:
        if self.phase != Phase.consuming:
            raise GenerationError(
                f"Generator for {self.filename} is {self.phase.value}, not consuming"
            )

    def _emit(self, text: str) -> None:
        if text:
            self.state.buffer.append(text)
