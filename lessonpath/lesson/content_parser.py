"""
Lesson Content Parser.

Parses markdown lesson text into the structure the stepper plays:
welcome data (objectives, hook), learn sections, vocabulary, summary and
resources. Sections are split on `## ` headers; anything before the first
header becomes an "Introduction" section when it is long enough.
"""
from __future__ import annotations

import re
from dataclasses import replace
from typing import Optional

from loguru import logger

from lessonpath.lesson.models import (
    LessonContent,
    LessonResource,
    LessonSection,
    LessonWelcome,
    SectionType,
    VocabularyTerm,
)

MAX_HOOK_CHARS = 300


class LessonContentParser:
    """Markdown -> LessonContent."""

    # Section title patterns
    OBJECTIVES_PATTERN = re.compile(r"^(learning\s*goals?|what\s*you('ll)?\s*learn|objectives?)", re.I)
    INTRODUCTION_PATTERN = re.compile(r"^(introduction|overview|getting\s*started)", re.I)
    CONCEPT_PATTERN = re.compile(r"^(key\s*concepts?|understanding|concepts?|main\s*idea|core\s*concepts?)", re.I)
    PRACTICE_PATTERN = re.compile(r"^(let'?s\s*practice|practice|try\s*it|your\s*turn|guided\s*practice)", re.I)
    VOCABULARY_PATTERN = re.compile(r"^(key\s*vocabulary|vocabulary|terms?|definitions?|glossary)", re.I)
    SUMMARY_PATTERN = re.compile(r"^(summary|review|key\s*takeaways?|wrap[\s-]*up|conclusion)", re.I)
    RESOURCES_PATTERN = re.compile(r"^(additional\s*resources?|resources?|further\s*reading|learn\s*more)", re.I)

    # Content patterns
    HEADER_PATTERN = re.compile(r"^##\s+(.+)$", re.M)
    LIST_ITEM_PATTERN = re.compile(r"^\s*[-*•]\s*(.+)$|^\s*\d+[.):]\s*(.+)$", re.M)
    BOLD_TERM_PATTERN = re.compile(r"\*\*([^*]+)\*\*:\s*(.+?)(?=\n\*\*|\n\n|\Z)", re.S)
    LIST_TERM_PATTERN = re.compile(r"^\s*[-*•]\s*\*?\*?([^:*\n]+)\*?\*?\s*[-–:]\s*(.+)$", re.M)
    LINK_PATTERN = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
    METADATA_LINE_PATTERN = re.compile(r"(^|\s)(\*\*)?(grade|subject|estimated time)\s*:", re.I)

    def categorize_section(self, title: str) -> SectionType:
        normalized = title.lower().strip()
        if self.CONCEPT_PATTERN.search(normalized):
            return SectionType.CONCEPT
        if self.PRACTICE_PATTERN.search(normalized):
            return SectionType.ACTIVITY
        if "example" in normalized:
            return SectionType.EXAMPLE
        if "explain" in normalized:
            return SectionType.EXPLANATION
        return SectionType.GENERAL

    def split_sections(self, markdown: str) -> list[tuple[str, str]]:
        parts = self.HEADER_PATTERN.split(markdown)
        sections: list[tuple[str, str]] = []

        intro = parts[0].strip() if parts else ""
        if len(intro) > 50:
            sections.append(("Introduction", intro))

        # Remaining parts alternate title, content
        for i in range(1, len(parts), 2):
            title = parts[i].strip()
            content = parts[i + 1].strip() if i + 1 < len(parts) else ""
            if title and content:
                sections.append((title, content))

        return sections

    def extract_objectives(self, content: str) -> list[str]:
        objectives = []
        for match in self.LIST_ITEM_PATTERN.finditer(content):
            item = (match.group(1) or match.group(2) or "").strip()
            if 5 < len(item) < 200:
                objectives.append(item)
        return objectives

    def extract_vocabulary(self, content: str) -> list[VocabularyTerm]:
        terms = []
        for match in self.BOLD_TERM_PATTERN.finditer(content):
            term = match.group(1).strip()
            definition = match.group(2).strip().replace("\n", " ")
            if term and definition:
                terms.append(VocabularyTerm(term=term, definition=definition))

        if not terms:
            for match in self.LIST_TERM_PATTERN.finditer(content):
                term = match.group(1).strip()
                definition = match.group(2).strip()
                if term and definition and len(term) < 50:
                    terms.append(VocabularyTerm(term=term, definition=definition))

        return terms

    def extract_resources(self, content: str) -> list[LessonResource]:
        resources = []
        for match in self.LINK_PATTERN.finditer(content):
            title = match.group(1).strip()
            url = match.group(2).strip()
            if not title or not url.startswith("http"):
                continue

            if re.search(r"youtube|vimeo|video", url, re.I):
                kind = "video"
            elif re.search(r"docs|pdf|document", url, re.I):
                kind = "document"
            elif re.search(r"interactive|simulation|game", url, re.I):
                kind = "interactive"
            elif re.search(r"article|blog|medium|news", url, re.I):
                kind = "article"
            else:
                kind = "link"
            resources.append(LessonResource(title=title, url=url, type=kind))
        return resources

    def extract_hook(self, content: str) -> Optional[str]:
        """First one or two sentences of the introduction, without metadata lines or tables."""
        lines = [line.strip() for line in (content or "").split("\n")]
        lines = [
            line
            for line in lines
            if line
            and not re.match(r"^#{1,6}\s+", line)
            and not self.METADATA_LINE_PATTERN.search(line)
            and not line.startswith("|")
        ]
        cleaned = " ".join(lines).replace("**", "")
        cleaned = re.sub(r"[_`]", "", cleaned)
        cleaned = re.sub(r"\s+", " ", cleaned).strip()
        if not cleaned:
            return None

        sentences = re.split(r"(?<=[.!?])\s+", cleaned)
        candidate = (" ".join(sentences[:2]) if len(sentences) > 1 else cleaned).strip()
        if len(candidate) > MAX_HOOK_CHARS:
            candidate = f"{candidate[:MAX_HOOK_CHARS].strip()}…"
        return candidate if len(candidate) > 20 else None

    def parse(
        self,
        markdown: str,
        title: str = "Lesson",
        subject: str = "",
        grade_band: str = "",
        estimated_minutes: Optional[int] = None,
    ) -> LessonContent:
        result = LessonContent(
            welcome=LessonWelcome(
                title=title,
                subject=subject,
                grade_band=grade_band,
                estimated_minutes=estimated_minutes,
            ),
            raw_content=markdown,
        )

        def add_learn_section(section_title: str, content: str, kind: SectionType) -> None:
            result.learn_sections.append(
                LessonSection(
                    id=f"section-{len(result.learn_sections)}",
                    title=section_title,
                    content=content,
                    type=kind,
                )
            )

        for section_title, content in self.split_sections(markdown):
            lowered = section_title.lower()

            if self.OBJECTIVES_PATTERN.search(lowered):
                result.welcome.objectives = self.extract_objectives(content)
            elif self.INTRODUCTION_PATTERN.search(lowered):
                result.welcome.hook = self.extract_hook(content)
                add_learn_section(section_title, content, SectionType.EXPLANATION)
            elif self.VOCABULARY_PATTERN.search(lowered):
                result.vocabulary = self.extract_vocabulary(content)
            elif self.SUMMARY_PATTERN.search(lowered):
                result.summary = content
            elif self.RESOURCES_PATTERN.search(lowered):
                result.resources = self.extract_resources(content)
            else:
                add_learn_section(section_title, content, self.categorize_section(section_title))

        if not result.learn_sections and markdown.strip():
            add_learn_section("Lesson Content", markdown, SectionType.GENERAL)

        # Section titles stand in for missing objectives
        if not result.welcome.objectives and result.learn_sections:
            result.welcome.objectives = [
                f"Understand {s.title.lower()}" for s in result.learn_sections[:4]
            ]

        logger.debug(
            f"Parsed lesson '{title}': {result.section_count} learn sections, "
            f"{len(result.vocabulary)} terms, {len(result.resources)} resources"
        )
        return result


def parse_lesson_content(
    markdown: str,
    title: str = "Lesson",
    subject: str = "",
    grade_band: str = "",
    estimated_minutes: Optional[int] = None,
) -> LessonContent:
    return LessonContentParser().parse(
        markdown,
        title=title,
        subject=subject,
        grade_band=grade_band,
        estimated_minutes=estimated_minutes,
    )


def consolidate_sections(sections: list[LessonSection], min_content_length: int = 200) -> list[LessonSection]:
    """Merge a short section into the previous one when both are short."""
    consolidated: list[LessonSection] = []
    for section in sections:
        last = consolidated[-1] if consolidated else None
        if last is not None and len(section.content) < min_content_length and len(last.content) < min_content_length:
            last.content += f"\n\n## {section.title}\n\n{section.content}"
            continue
        consolidated.append(replace(section))
    return consolidated
