"""
Markdown rendering of a generated wiki, used as chat context and for
the command-line export.
"""

from typing import List

from repowiki.models import Citation, Wiki


def _source_line(citation: Citation) -> str:
    return f"*Source: [{citation.file}:{citation.start_line}-{citation.end_line}]({citation.url})*"


def serialize_wiki_to_markdown(wiki: Wiki) -> str:
    lines: List[str] = [f"# {wiki.repo_name}", ""]
    if wiki.description:
        lines += [wiki.description, ""]
    lines += [f"Repository: {wiki.repo_url}", "", "---", ""]

    for feature in wiki.features:
        lines += [f"## {feature.name}", "", feature.summary, ""]
        for section in feature.sections:
            lines += [f"### {section.title}", "", section.content, ""]
            for snippet in section.code_snippets:
                lines += [
                    f"```{snippet.language}",
                    snippet.code,
                    "```",
                    _source_line(snippet.citation),
                    "",
                ]
        if feature.related_features:
            lines += [f"**Related features:** {', '.join(feature.related_features)}", ""]
        lines += ["---", ""]

    return "\n".join(lines)
