"""Default split points per document type, most significant boundary first."""

from __future__ import annotations

from typing import Optional

DEFAULT_SEPARATORS = ["\n\n", "\n"]

_CPP = ["\nclass ", "\nvoid ", "\nint ", "\nfloat ", "\ndouble ", "\nif ", "\nfor ", "\nwhile ",
        "\nswitch ", "\ncase ", "\n\n", "\n"]
_GO = ["\nfunc ", "\nvar ", "\nconst ", "\ntype ", "\nif ", "\nfor ", "\nswitch ", "\ncase ", "\n\n", "\n"]
_JAVA_LIKE = ["// LLM-REGION", "/* LLM-REGION", "/** LLM-REGION", "\nclass ", "\npublic ",
              "\nprotected ", "\nprivate ", "\nstatic ", "\nif ", "\nfor ", "\nwhile ", "\nswitch ",
              "\ncase ", "\n\n", "\n", " "]
_JS = ["// LLM-REGION", "/* LLM-REGION", "/** LLM-REGION", "\nclass ", "\nfunction ", "\nconst ",
       "\nlet ", "\nvar ", "\nclass ", "\nif ", "\nfor ", "\nwhile ", "\nswitch ", "\ncase ",
       "\ndefault ", "\n\n", "\n"]
_PHP = ["\nfunction ", "\nclass ", "\nif ", "\nforeach ", "\nwhile ", "\ndo ", "\nswitch ", "\ncase ",
        "\n\n", "\n"]
_PROTO = ["\nmessage ", "\nservice ", "\nenum ", "\noption ", "\nimport ", "\nsyntax ", "\n\n", "\n"]
_PYTHON = ["\nclass ", "\ndef ", "\n\tdef ", "\n\n", "\n"]
_RST = ["\n===\n", "\n---\n", "\n***\n", "\n.. ", "\n\n", "\n"]
_RUBY = ["\ndef ", "\nclass ", "\nif ", "\nunless ", "\nwhile ", "\nfor ", "\ndo ", "\nbegin ",
         "\nrescue ", "\n\n", "\n"]
_RUST = ["\nfn ", "\nconst ", "\nlet ", "\nif ", "\nwhile ", "\nfor ", "\nloop ", "\nmatch ",
         "\nconst ", "\n\n", "\n"]
_SCALA = ["\nclass ", "\nobject ", "\ndef ", "\nval ", "\nvar ", "\nif ", "\nfor ", "\nwhile ",
          "\nmatch ", "\ncase ", "\n\n", "\n"]
_SWIFT = ["\nfunc ", "\nclass ", "\nstruct ", "\nenum ", "\nif ", "\nfor ", "\nwhile ", "\ndo ",
          "\nswitch ", "\ncase ", "\n\n", "\n"]
_MARKDOWN = ["\n## ", "\n### ", "\n#### ", "\n##### ", "\n###### ", "```\n\n", "\n\n***\n\n",
             "\n\n---\n\n", "\n\n___\n\n", "<table>", "\n\n", "\n"]
_LATEX = ["\n\\chapter{", "\n\\section{", "\n\\subsection{", "\n\\subsubsection{",
          "\n\\begin{enumerate}", "\n\\begin{itemize}", "\n\\begin{description}", "\n\\begin{list}",
          "\n\\begin{quote}", "\n\\begin{quotation}", "\n\\begin{verse}", "\n\\begin{verbatim}",
          "\n\\begin{align}", "\n\n", "\n"]
_HTML = ["<body>", "<div>", "<p>", "<br>", "<li>", "<h1>", "<h2>", "<h3>", "<h4>", "<h5>", "<h6>",
         "<span>", "<table>", "<tr>", "<td>", "<th>", "<ul>", "<ol>", "<header>", "<footer>", "<nav>",
         "<head>", "<style>", "<script>", "<meta>", "<title>"]
_SOLIDITY = ["\npragma ", "\nusing ", "\ncontract ", "\ninterface ", "\nlibrary ", "\nconstructor ",
             "\ntype ", "\nfunction ", "\nevent ", "\nmodifier ", "\nerror ", "\nstruct ", "\nenum ",
             "\nif ", "\nfor ", "\nwhile ", "\ndo while ", "\nassembly ", "\n\n", "\n"]

SEPARATORS_BY_DOC_TYPE: dict[str, list[str]] = {
    "cpp": _CPP,
    "go": _GO,
    "java": _JAVA_LIKE,
    "c#": _JAVA_LIKE,
    "csharp": _JAVA_LIKE,
    "cs": _JAVA_LIKE,
    "ts": _JAVA_LIKE,
    "tsx": _JAVA_LIKE,
    "typescript": _JAVA_LIKE,
    "js": _JS,
    "jsx": _JS,
    "javascript": _JS,
    "php": _PHP,
    "proto": _PROTO,
    "python": _PYTHON,
    "py": _PYTHON,
    "rst": _RST,
    "ruby": _RUBY,
    "rust": _RUST,
    "scala": _SCALA,
    "swift": _SWIFT,
    "md": _MARKDOWN,
    "markdown": _MARKDOWN,
    "latex": _LATEX,
    "html": _HTML,
    "sol": _SOLIDITY,
}


def get_separators(doc_type: Optional[str]) -> list[str]:
    return list(SEPARATORS_BY_DOC_TYPE.get(doc_type or "", DEFAULT_SEPARATORS))
