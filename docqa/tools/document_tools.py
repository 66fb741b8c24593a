"""
Document Tools

Tools that work on whole documents: extracting the parsed text of a stored
upload, and drafting a new LaTeX article in the workspace.
"""

from functools import partial
from pathlib import PurePosixPath
from string import Template
from typing import Any, Dict
import asyncio

import structlog

from docqa.core.exceptions import DocQAException, InputValidationError, ToolExecutionError
from docqa.rag.parser import parse_file
from docqa.tools.base_tool import (
    BaseTool,
    ToolContext,
    ToolKind,
    ToolMetadata,
    ToolParameter,
    ToolParameterType,
    ToolResponse,
)

logger = structlog.get_logger(__name__)

LATEX_ARTICLE = Template(r"""\documentclass[11pt,a4paper]{article}
\usepackage[utf8]{inputenc}
\usepackage[T1]{fontenc}
\usepackage{amsmath}
\usepackage{amssymb}
\usepackage{graphicx}
\usepackage{hyperref}
\usepackage{geometry}
\geometry{margin=1in}

\title{$title}
\author{$author}
\date{\today}

\begin{document}

\maketitle

\begin{abstract}
This article provides an overview of $topic. It covers the fundamental concepts, key principles and current developments in the field.
\end{abstract}

\section{Introduction}

This article gives an overview of $topic: what it is, why it matters, and where it is applied.

\section{Background and Fundamentals}

Understanding $topic requires a grasp of its foundational concepts.

\section{Key Concepts and Principles}

\begin{itemize}
\item Fundamental principles and theories
\item Core methodologies and approaches
\item Important frameworks and models
\end{itemize}

\section{Applications and Use Cases}

\begin{itemize}
\item Practical applications in industry
\item Research and academic applications
\item Emerging use cases
\end{itemize}

\section{Current Developments and Future Directions}

Current work on $topic focuses on extending both its theory and its practical reach.

\section{Conclusion}

This article has outlined $topic, its fundamentals and its applications.

\begin{thebibliography}{9}
\bibitem{ref1}
Example reference. \textit{Journal Name}, Volume, Pages, Year.
\end{thebibliography}

\end{document}
""")


class ExtractDocumentTool(BaseTool):
    """Return the full parsed text of a stored document."""

    kind = ToolKind.EXTRACT_DOCUMENT

    def _get_metadata(self) -> ToolMetadata:
        return ToolMetadata(
            name=self.kind.value,
            description=(
                "Extract the full text of an uploaded document (PDF, DOCX, XLSX, TXT, ...). "
                "Use this to understand what a document contains."
            ),
            category="documents",
            parameters=[
                ToolParameter(
                    name="filename",
                    type=ToolParameterType.STRING,
                    description="Filename of the document in the workspace (e.g. \"report.pdf\")"
                ),
            ]
        )

    def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResponse:
        path = context.workspace.resolve(params["filename"])
        if not path.is_file():
            raise ToolExecutionError(self.name, f"File not found: {params['filename']}")

        relative = context.workspace.relative(path)
        parsed = parse_file(path, path.name, context.chunk_size, context.chunk_overlap_lines)

        if not parsed.text.strip():
            return ToolResponse(data=f'Document "{relative}" appears to be empty or could not be parsed.')

        full_text = "\n\n".join(segment.text for segment in parsed.segments)
        return ToolResponse(
            data=f"Document: {relative}\n\n{full_text}",
            metadata={"segments": len(parsed.segments)}
        )


class CreateLatexFileTool(BaseTool):
    """Create a LaTeX article skeleton about a topic."""

    kind = ToolKind.CREATE_LATEX_FILE

    def _get_metadata(self) -> ToolMetadata:
        return ToolMetadata(
            name=self.kind.value,
            description=(
                "Create a new LaTeX (.tex) article about a topic, with abstract, sections and a "
                "bibliography template. Use this when the user asks to create an article, paper "
                "or document. Fill the sections in afterwards with insert_text."
            ),
            category="editing",
            parameters=[
                ToolParameter(
                    name="filename",
                    type=ToolParameterType.STRING,
                    description="Filename for the article; .tex is added when missing"
                ),
                ToolParameter(
                    name="topic",
                    type=ToolParameterType.STRING,
                    description="Topic of the article (e.g. \"quantum computing\")"
                ),
                ToolParameter(
                    name="title",
                    type=ToolParameterType.STRING,
                    description="Optional custom title",
                    required=False
                ),
                ToolParameter(
                    name="author",
                    type=ToolParameterType.STRING,
                    description="Optional author name (defaults to \"Author\")",
                    required=False
                ),
            ]
        )

    async def execute(self, params: Dict[str, Any], context: ToolContext) -> ToolResponse:
        filename = params["filename"].strip()
        topic = params["topic"].strip()
        if not filename:
            raise InputValidationError("filename must not be empty")
        if not topic:
            raise InputValidationError("topic must not be empty")

        if PurePosixPath(filename).suffix.lower() != ".tex":
            filename = f"{filename}.tex"

        title = params["title"] or f"{topic[0].upper()}{topic[1:]}: An Overview"
        author = params["author"] or "Author"

        path = context.workspace.resolve(filename)
        if path.exists():
            raise ToolExecutionError(
                self.name,
                f"File already exists: {filename}. Please choose a different filename."
            )

        content = LATEX_ARTICLE.substitute(title=title, author=author, topic=topic)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, partial(context.workspace.write_text_atomic, filename, content, cancelled=context.cancelled)
        )
        relative = context.workspace.relative(path)

        document_id = None
        if context.indexer is not None:
            try:
                result = await context.indexer.index_stored_file(relative)
                document_id = result.document_id
            except DocQAException as e:
                logger.warning("Created file could not be indexed", path=relative, error=e.message)

        logger.info("LaTeX file created", path=relative, topic=topic, document_id=document_id)

        created = {"filename": relative, "document_id": document_id, "topic": topic, "title": title}
        return ToolResponse(
            data=(
                f"Successfully created LaTeX file: {relative}\n"
                f"Title: {title}\nAuthor: {author}\n"
                "Sections: Introduction, Background and Fundamentals, Key Concepts and Principles, "
                "Applications and Use Cases, Current Developments and Future Directions, Conclusion.\n"
                "Includes an abstract and a bibliography template."
            ),
            metadata={"created_file": created}
        )
