"""Default chunk templates for the two summarization passes."""

from .schema import ChunkTemplate

CHUNK_HEADER = """You are an expert at summarizing transcripts.
Below is one consecutive part of a longer transcript. Summarize only this part.
Keep names, decisions, numbers and the order in which topics come up.
Ignore filler words, greetings and repetition.

TRANSCRIPT PART:
"""

CHUNK_FOOTER = """

Write the summary as a few plain sentences. Output ONLY the summary, no commentary."""

FINAL_HEADER = """You are an expert at creating concise summaries.
Below are summaries of consecutive parts of one transcript, in order.
Merge them into a single summary of the whole transcript.
Deduplicate similar points and keep the overall flow of the conversation.

PART SUMMARIES:
"""

FINAL_FOOTER = """

Create the final summary with these sections:

## TL;DR
- (3 bullet points capturing the essence)

## Key Points
- (5-10 most important takeaways)

## Action Items
- (decisions and next steps, if any were mentioned)

Output ONLY the summary, no additional commentary."""

STAGE1_TEMPLATE = ChunkTemplate(header=CHUNK_HEADER, footer=CHUNK_FOOTER)
FINAL_TEMPLATE = ChunkTemplate(header=FINAL_HEADER, footer=FINAL_FOOTER)
