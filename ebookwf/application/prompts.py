"""Prompt builders for the generation steps.

Every builder is a pure function of the instance's upstream outputs plus
optional user guidance, so the same inputs always give the same prompt.
"""

from ebookwf.domain.models.workflow_state import WorkflowInstance


def _with_guidance(prompt: str, guidance: str | None) -> str:
    if guidance and guidance.strip():
        return f"{prompt}\n\nAdditional guidance from the author:\n{guidance.strip()}"
    return prompt


def title_prompt(instance: WorkflowInstance, guidance: str | None = None) -> str:
    prompt = (
        "Given the following structured data containing key themes, topics, and summaries, "
        "generate an engaging and viral eBook title that succinctly encapsulates the core "
        "message. The title should be catchy, clear, and adaptable to various genres or "
        "content styles. If the provided data is minimal, infer a creative title based on "
        "best-practice title structures.\n\n"
        f"Raw Data:\n{instance.raw_input or ''}\n\n"
        "Output only the title without any additional text or formatting."
    )
    return _with_guidance(prompt, guidance)


def toc_prompt(instance: WorkflowInstance, guidance: str | None = None) -> str:
    prompt = (
        "Review the following structured data comprising key points, themes, and summaries. "
        f'Develop a detailed table of contents for an eBook titled "{instance.title}" by '
        "outlining chapter titles. For each chapter, list the corresponding data points or "
        "topics that will be discussed. Ensure the sequence offers a logical flow and "
        "accommodates both broad and niche content areas. If gaps are detected, propose "
        "additional sections that could enhance the narrative.\n\n"
        f"Raw Data:\n{instance.raw_input or ''}\n\n"
        "Format your response as a valid JSON object with this structure:\n"
        "{\n"
        '  "chapters": [\n'
        "    {\n"
        '      "title": "Chapter Title",\n'
        '      "dataPoints": ["Data point 1", "Data point 2", "..."]\n'
        "    }\n"
        "  ]\n"
        "}\n\n"
        "Provide only the JSON without any additional text or formatting."
    )
    return _with_guidance(prompt, guidance)


def chapter_prompt(instance: WorkflowInstance, index: int, guidance: str | None = None) -> str:
    """Prompt for chapter ``index``.

    Titles of the chapters before ``index`` are included so the model can keep
    the narrative consistent; this is why chapters are generated in order.
    """
    outline = instance.table_of_contents.chapters[index]
    data_points = "\n".join(f"- {dp}" for dp in outline.data_points) or "- (none provided)"

    prompt = (
        f"Compose a comprehensive chapter for the eBook titled '{instance.title}'. "
        f"This is chapter {index + 1}: '{outline.title}'. Incorporate the following data points:\n\n"
        f"{data_points}\n\n"
    )

    earlier = instance.table_of_contents.titles()[:index]
    if earlier:
        listed = "\n".join(f"{i + 1}. {t}" for i, t in enumerate(earlier))
        prompt += (
            "The preceding chapters are:\n"
            f"{listed}\n"
            "Build on them without repeating their material.\n\n"
        )

    prompt += (
        "The chapter must be detailed, coherent, and engaging, with a clear narrative "
        "structure. Include explanations, examples, and smooth transitions to enhance "
        "readability. If the input data is sparse, intelligently expand on common themes "
        "while remaining consistent with the overall ebook purpose.\n\n"
        "Output only the chapter content without any additional text or formatting."
    )
    return _with_guidance(prompt, guidance)


def introduction_prompt(instance: WorkflowInstance, guidance: str | None = None) -> str:
    titles = "\n".join(f"- {t}" for t in instance.table_of_contents.titles())
    prompt = (
        f"Craft an engaging introduction for an eBook titled '{instance.title}' that leverages "
        "the following table of contents:\n\n"
        f"{titles}\n\n"
        "Your introduction should establish a strong hook, outline the main themes, and set "
        "clear expectations for the reader. Aim for 300-500 words, ensuring the tone is "
        "inviting and adaptable to a variety of content styles. Consider starting with a "
        "thought-provoking question or a striking statistic to capture attention.\n\n"
        "Output only the introduction without any additional text or formatting."
    )
    return _with_guidance(prompt, guidance)


def conclusion_prompt(instance: WorkflowInstance, guidance: str | None = None) -> str:
    summaries = "\n".join(
        f"{i + 1}. {c.title}: {', '.join(c.data_points)}"
        for i, c in enumerate(instance.table_of_contents.chapters)
    )
    prompt = (
        f"Develop a compelling conclusion for the ebook titled '{instance.title}' by "
        "summarizing the essential points from the following chapters:\n\n"
        f"{summaries}\n\n"
        "Reinforce the central message, tie together any loose ends, and provide the reader "
        "with actionable takeaways or a memorable closing thought. Aim for a 500-1000-word "
        "conclusion that is both reflective and inspiring.\n\n"
        "Output only the conclusion without any additional text or formatting."
    )
    return _with_guidance(prompt, guidance)


def review_prompt(instance: WorkflowInstance, guidance: str | None = None) -> str:
    chapters_text = "\n\n---\n\n".join(
        f"CHAPTER {c.index + 1}: {c.title}\n\n{c.content or ''}" for c in instance.chapters
    )
    prompt = (
        "You are a professional editor reviewing an eBook draft. Provide a comprehensive, "
        "detailed review focusing on improving the quality, readability, and professionalism "
        "of the content.\n\n"
        "Analyze the draft for:\n"
        "1. COHERENCE: logical flow of ideas across chapters and sections\n"
        "2. CLARITY: whether explanations are clear and concepts well-presented\n"
        "3. CONSISTENCY: tone, style, terminology, and formatting\n"
        "4. ENGAGEMENT: how compelling the content is for readers\n"
        "5. COMPLETENESS: gaps or areas that need more development\n"
        "6. LANGUAGE: awkward phrasing, grammatical issues, or repetition\n\n"
        "EBOOK CONTENT:\n"
        f"TITLE: {instance.title}\n\n"
        f"INTRODUCTION:\n{instance.introduction}\n\n"
        f"CHAPTERS:\n{chapters_text}\n\n"
        f"CONCLUSION:\n{instance.conclusion}\n\n"
        "Provide your review as a structured list of specific feedback points organized by "
        "section (Title, Introduction, each Chapter, Conclusion). For each issue, explain what "
        "needs improvement, why it is an issue, and a specific suggestion for fixing it."
    )
    return _with_guidance(prompt, guidance)


def chapter_revision_prompt(instance: WorkflowInstance, index: int, guidance: str | None = None) -> str:
    """Prompt revising chapter ``index`` against the stored review notes."""
    chapter = instance.chapters[index]
    prompt = (
        f"You are revising Chapter {index + 1} of an eBook based on editorial feedback. "
        "Here is the overall feedback for the entire eBook:\n\n"
        f"{instance.review_notes or ''}\n\n"
        "Now, focus specifically on improving this chapter. Enhance clarity, coherence, and "
        "reader engagement while maintaining the original content's core message and "
        "structure.\n\n"
        f"ORIGINAL CHAPTER {index + 1}: {chapter.title}\n"
        f"{chapter.content or ''}\n\n"
        "Produce a revised version of this chapter only. Keep the same chapter title but "
        "improve the content based on the feedback. Output only the revised chapter content "
        "without any additional text or formatting."
    )
    return _with_guidance(prompt, guidance)


def sections_revision_prompt(instance: WorkflowInstance, guidance: str | None = None) -> str:
    prompt = (
        "Based on the following editorial feedback about an eBook:\n\n"
        f"{instance.review_notes or ''}\n\n"
        "Please revise these specific sections of the eBook. Make them more engaging, clear, "
        "and professional while maintaining the core message:\n\n"
        f"TITLE: {instance.title}\n"
        f"INTRODUCTION:\n{instance.introduction}\n"
        f"CONCLUSION:\n{instance.conclusion}\n\n"
        "Provide your response in valid JSON format:\n"
        "{\n"
        '  "title": "Improved Title",\n'
        '  "introduction": "Revised introduction text...",\n'
        '  "conclusion": "Revised conclusion text..."\n'
        "}"
    )
    return _with_guidance(prompt, guidance)
