"""
Prompt templates for extraction, merging, repair and verbalization.

Templates use str.format placeholders. Every template that is sent during
extraction embeds the complete schema text.
"""

DEFAULT_SYSTEM_PROMPT = (
    "You are a strict structured-output assistant. Follow the user prompt exactly. "
    "Don't invent facts. If unsure, leave fields missing. Output only what's requested."
)

EXTRACTION_PROMPT = """Extract structured data from the following input according to the "{schema_title}" specification.

Instructions:
- Extract only information that is explicitly present in the input
- Do not invent or infer information not directly stated
- Leave fields empty/null if the information is not available
- Follow the JSON schema structure exactly
- Ensure all required fields are present

Input:
{input}

JSON Schema Reference:
{schema}

Provide the extracted data as valid JSON:"""

CHUNK_EXTRACTION_PROMPT = """Extract structured data from the following input according to the "{schema_title}" specification.

Instructions:
- Extract only information that is explicitly present in this chunk
- Do not invent or infer information not directly stated
- Leave fields empty/null if the information is not available in this chunk
- Follow the JSON schema structure exactly
- This is part of a larger document, so partial information is expected

Input:
{input}

JSON Schema Reference:
{schema}

Provide the extracted data as valid JSON:"""

DEFAULT_MERGE_INSTRUCTIONS = """Merge the new data with the existing data:
- Combine arrays by appending new items
- Update object fields with new information
- Preserve existing data when not conflicted
- Use new data to fill in missing fields
- When data conflicts, prefer the new data"""

MERGE_PROMPT = """You have existing extracted data and a new chunk of text to process. Merge the new information with the existing data according to the "{schema_title}" specification.

{instructions}

Existing extracted data:
{previous}

New chunk to merge:
{input}

JSON Schema Reference:
{schema}

Provide the merged result as valid JSON that follows the schema:"""

DEFAULT_CONSOLIDATION_INSTRUCTIONS = """Consolidate all the partial results into a single comprehensive result:
- Merge arrays by combining all items
- Merge objects by combining all fields
- Remove duplicates where appropriate
- Ensure the final result follows the schema structure"""

CONSOLIDATION_PROMPT = """Consolidate the following partial extraction results into a single comprehensive result.

{instructions}

Partial results to consolidate:
{results}

JSON Schema Reference:
{schema}

Provide the consolidated result as valid JSON:"""

REPAIR_PROMPT = """The previous response was invalid JSON according to the schema. Please fix the following validation errors and provide a corrected JSON response:

Validation errors:
{errors}

Original prompt: {prompt}

Invalid JSON response:
{payload}

Please provide a corrected JSON response that follows the schema exactly:"""

MERGED_RESULT_PROMPT = """Combine the information extracted from all chunks of a larger document into a single result according to the "{schema_title}" specification.

JSON Schema Reference:
{schema}

Provide the merged result as valid JSON that follows the schema:"""

VERBALIZATION_PROMPT = """Convert the following structured JSON data into clear, readable Markdown format.

Requirements:
- Use appropriate Markdown formatting (headers, lists, tables, etc.)
- Present the information in a logical, easy-to-read structure
- Include only the information present in the JSON data
- Do not add commentary or extra headings beyond what the data implies
- Maintain accuracy to the original data

JSON Data:
{json_data}

Generate well-formatted Markdown:"""

SPEC_PROMPT = """Turn this JSON schema spec into a plain English prompt:

{schema}"""


def render_template(template: str, **values) -> str:
    """Fill a template in a single str.format pass; braces in values are kept verbatim."""
    return template.format(**values)
