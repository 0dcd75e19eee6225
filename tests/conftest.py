# tests/conftest.py
"""
Shared fixtures: small avr-objdump listings with hand-computed stack use.

FIRMWARE_LISTING call graph (callees in address order)::

    __vectors ─┬─ main ─┬─ func_a ── func_b
               │        ├─ big_frame ── func_b       (prologue helper, 14 B)
               │        ├─ huge_frame ── func_b      (SP -= 2048)
               │        └─ recurse ── recurse
               ├─ __vector_1 ── func_b               (3 pushes)
               └─ __bad_interrupt                    (not in listing)
"""

import pytest

from avrstack.analyzer import FunctionAnalyzer
from avrstack.callgraph import build_callgraph
from avrstack.config import AnalyzerConfig
from avrstack.errors import DiagnosticLog
from avrstack.paths import StackPathComputer


SIMPLE_LISTING = """\
00000100 <func_a>:
 100:\t80 e0       \tldi\tr24, 0x00\t; 0
 102:\tcf 93       \tpush\tr28
 104:\t0e 94 00 01 \tcall\t0x200\t; 0x200 <func_b>
 108:\tcf 91       \tpop\tr28
 10a:\t08 95       \tret

00000200 <func_b>:
 200:\t80 e0       \tldi\tr24, 0x00\t; 0
 202:\t08 95       \tret
"""

FIRMWARE_LISTING = """\

firmware.elf:     file format elf32-avr


Disassembly of section .text:

00000000 <__vectors>:
   0:\t0c 94 40 00 \tjmp\t0x80\t; 0x80 <main>
   4:\t0c 94 80 01 \tjmp\t0x300\t; 0x300 <__vector_1>
   8:\t0c 94 20 00 \tjmp\t0x40\t; 0x40 <__bad_interrupt>

00000080 <main>:
int main(void)
{
  80:\t0e 94 80 00 \tcall\t0x100\t; 0x100 <func_a>
  84:\t0e 94 00 02 \tcall\t0x400\t; 0x400 <big_frame>
  88:\t0e 94 80 02 \tcall\t0x500\t; 0x500 <huge_frame>
  8c:\t0e 94 00 03 \tcall\t0x600\t; 0x600 <recurse>
  90:\tff cf       \trjmp\t.-2      \t; 0x90 <main+0x10>

00000100 <func_a>:
 100:\t80 e0       \tldi\tr24, 0x00\t; 0
 102:\tcf 93       \tpush\tr28
 104:\t0e 94 00 01 \tcall\t0x200\t; 0x200 <func_b>
 108:\tcf 91       \tpop\tr28
 10a:\t08 95       \tret

00000200 <func_b>:
 200:\t80 e0       \tldi\tr24, 0x00\t; 0
 202:\t08 95       \tret

00000300 <__vector_1>:
 300:\t1f 92       \tpush\tr1
 302:\t0f 92       \tpush\tr0
 304:\t8f 93       \tpush\tr24
 306:\t7c df       \trcall\t.-264    \t; 0x200 <func_b>
 308:\t8f 91       \tpop\tr24
 30a:\t0f 90       \tpop\tr0
 30c:\t1f 90       \tpop\tr1
 30e:\t18 95       \treti

00000400 <big_frame>:
 400:\ta4 e0       \tldi\tr26, 0x04\t; 4
 402:\tb0 e0       \tldi\tr27, 0x00\t; 0
 404:\te8 e0       \tldi\tr30, 0x08\t; 8
 406:\tf2 e0       \tldi\tr31, 0x02\t; 2
 408:\t0c 94 e8 03 \tjmp\t0x7d0\t; 0x7d0 <__prologue_saves__+0x10>
 40c:\t0e 94 00 01 \tcall\t0x200\t; 0x200 <func_b>
 410:\te4 e0       \tldi\tr30, 0x04\t; 4
 412:\t0c 94 04 04 \tjmp\t0x808\t; 0x808 <__epilogue_restores__+0x10>

00000500 <huge_frame>:
 500:\tcf 93       \tpush\tr28
 502:\tdf 93       \tpush\tr29
 504:\tcd b7       \tin\tr28, 0x3d\t; 61
 506:\tde b7       \tin\tr29, 0x3e\t; 62
 508:\tc0 50       \tsubi\tr28, 0x00\t; 0
 50a:\td8 40       \tsbci\tr29, 0x08\t; 8
 50c:\t0f b6       \tin\tr0, 0x3f\t; 63
 50e:\tf8 94       \tcli
 510:\tde bf       \tout\t0x3e, r29\t; 62
 512:\t0f be       \tout\t0x3f, r0\t; 63
 514:\tcd bf       \tout\t0x3d, r28\t; 61
 516:\t0e 94 00 01 \tcall\t0x200\t; 0x200 <func_b>
 51a:\tc0 50       \tsubi\tr28, 0x00\t; 0
 51c:\td8 4f       \tsbci\tr29, 0xF8\t; 248
 51e:\t0f b6       \tin\tr0, 0x3f\t; 63
 520:\tf8 94       \tcli
 522:\tde bf       \tout\t0x3e, r29\t; 62
 524:\t0f be       \tout\t0x3f, r0\t; 63
 526:\tcd bf       \tout\t0x3d, r28\t; 61
 528:\tdf 91       \tpop\tr29
 52a:\tcf 91       \tpop\tr28
 52c:\t08 95       \tret

00000600 <recurse>:
 600:\tcf 93       \tpush\tr28
 602:\t0e 94 00 03 \tcall\t0x600\t; 0x600 <recurse>
 606:\tcf 91       \tpop\tr28
 608:\t08 95       \tret
"""

# Totals of every path from __vectors (see module docstring).
FIRMWARE_PATH_TOTALS = sorted([9, 22, 2058, 10, 9], reverse=True)


@pytest.fixture
def config():
    return AnalyzerConfig()


@pytest.fixture
def analyzer(config):
    return FunctionAnalyzer(config)


@pytest.fixture
def simple_lines():
    return SIMPLE_LISTING.splitlines()


@pytest.fixture
def firmware_lines():
    return FIRMWARE_LISTING.splitlines()


@pytest.fixture
def firmware_text():
    return FIRMWARE_LISTING


@pytest.fixture
def firmware_path_totals():
    return list(FIRMWARE_PATH_TOTALS)


@pytest.fixture
def firmware(analyzer, firmware_lines):
    """(AnalysisResult, CallGraph) for FIRMWARE_LISTING."""
    diagnostics = DiagnosticLog()
    result = analyzer.analyze(firmware_lines, diagnostics)
    return result, build_callgraph(result.functions, diagnostics)


@pytest.fixture
def simple(analyzer, simple_lines):
    """(AnalysisResult, CallGraph) for SIMPLE_LISTING."""
    diagnostics = DiagnosticLog()
    result = analyzer.analyze(simple_lines, diagnostics)
    return result, build_callgraph(result.functions, diagnostics)


@pytest.fixture
def computer(config):
    return StackPathComputer(config)


def asm(address, text, raw="00 00"):
    """One instruction line in avr-objdump shape."""
    return f" {address:x}:\t{raw:<12}\t{text}"


@pytest.fixture
def make_line():
    return asm
