from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from openai import OpenAI

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an AI assistant."

# Requests per embeddings call; OpenAI accepts larger batches but keeps payloads small.
EMBEDDING_BATCH_SIZE = 32


def build_prompt(filename: str, content: str) -> str:
    return f"""
## Prompt for Generating File Summaries

### Context:

You are an AI assistant tasked with generating a detailed summary for a single file in a software repository. This summary will be embedded and used to retrieve relevant files based on user queries. The summary should be comprehensive enough to allow a skilled developer to understand the purpose and functionality of the file, and potentially implement its contents.

### Instructions:

1. **File Type Identification:**
   - Identify the type of file (e.g., source code, configuration, documentation, etc.).
   - Specify the programming language or format (e.g., Python, Go, JSON, Markdown).

2. **Purpose and Role:**
   - Explain why the file exists in the repository.
   - Describe its role within the project.

3. **Detailed Description:**
   - For code files, explain the module, class, or function(s) contained within the file.
   - Describe the main logic, algorithms, or data structures used.
   - Highlight important dependencies or integrations with other parts of the project.

4. **Usage and Implementation:**
   - Give a high-level overview of how a developer might use or implement the contents of the file.
   - Include relevant usage examples or scenarios.

5. **Additional Context:**
   - Mention comments or documentation within the file that provide further context.
   - Note specific configurations, environment variables, or external resources required.

### Summary Format:

- **File Type:** [Type of file]
- **Programming Language/Format:** [Language/Format]
- **Purpose and Role:** [Why the file is in the repo and its role]
- **Detailed Description:**
  - [Module, class, or function(s)]
  - [Main logic, algorithms, or data structures]
  - [Dependencies or integrations]
- **Usage and Implementation:**
  - [High-level overview of usage or implementation]
  - [Usage examples or scenarios]
- **Additional Context:**
  - [Relevant comments or documentation]
  - [Configurations, environment variables, or external resources]

### File Information:

- **Filename:** {filename}
- **Content:** {content}

Keep the summary concise: it must not be longer than 1500 words.
"""


class SummaryBackend:
    """One named stage of the summary fallback chain.

    ``max_content_chars`` truncates the file content before the prompt is built;
    it is how the last stage copes with files too large for a context window.
    """

    def __init__(
        self,
        name: str,
        client: Optional[OpenAI],
        model: str,
        system_prompt: Optional[str] = SYSTEM_PROMPT,
        max_content_chars: Optional[int] = None,
        timeout: float = 120.0,
    ):
        self.name = name
        self.client = client
        self.model = model
        self.system_prompt = system_prompt
        self.max_content_chars = max_content_chars
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def prepare(self, content: str) -> str:
        if self.max_content_chars is None:
            return content
        return content[: self.max_content_chars]

    def generate(self, filename: str, content: str) -> Optional[str]:
        prompt = build_prompt(filename, self.prepare(content))
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            timeout=self.timeout,
        )
        if not response.choices:
            return None
        text = response.choices[0].message.content or ""
        return text.strip() or None


class SummaryChain:
    """Ordered fallback over :class:`SummaryBackend` stages."""

    def __init__(self, backends: Sequence[SummaryBackend]):
        self.backends = list(backends)

    def summarize(self, filename: str, content: str) -> Optional[str]:
        logger.info("Generating summary (content length: %s characters).", len(content))
        for backend in self.backends:
            if not backend.enabled:
                logger.info('Summary backend "%s" is not configured; skipping.', backend.name)
                continue
            logger.info('Attempting to generate summary with "%s" (model "%s").', backend.name, backend.model)
            try:
                summary = backend.generate(filename, content)
            except Exception as exc:  # noqa: BLE001
                logger.warning('Error generating summary with "%s" (model "%s"): %s', backend.name, backend.model, exc)
                continue
            if summary:
                logger.info('Generated summary with "%s".', backend.name)
                return summary
            logger.warning('Summary backend "%s" returned an empty response.', backend.name)
        logger.error("Failed to generate summary for %s.", filename)
        return None


class Embeddings:
    def __init__(self, model: str, api_key: str = "", base_url: Optional[str] = None, timeout: Optional[float] = 60.0):
        """Embeddings client on the OpenAI SDK; ``base_url`` targets any compatible server."""
        self.model = model
        self.client = OpenAI(
            base_url=base_url,
            api_key=api_key if api_key else "unused",
            timeout=timeout,
        )

    def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embeds texts in batches of EMBEDDING_BATCH_SIZE.
        Errors from the SDK propagate to the caller.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        for i in range(0, len(texts), EMBEDDING_BATCH_SIZE):
            batch = texts[i:i + EMBEDDING_BATCH_SIZE]
            logger.info("Sending embedding request for batch %s to %s", i, i + len(batch))
            try:
                response = self.client.embeddings.create(
                    input=batch,
                    model=self.model,
                    encoding_format="float",
                )
            except Exception as e:
                logger.error("Error during embedding request for batch %s: %s", i, e)
                raise
            all_embeddings.extend(item.embedding for item in response.data)
        return all_embeddings
