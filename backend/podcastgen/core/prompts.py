from podcastgen.core.llm import ChatOptions
from podcastgen.core.prompt_engine import PromptDefinition
from podcastgen.schemas.podcast import PodcastScript, PodcastScriptParams


def _podcast_script_template(params: PodcastScriptParams) -> str:
    host = params.host_name
    cohost = params.cohost_name
    return f"""
You are an expert podcast script writer. Write an engaging two-person podcast script based *only* on the essential information in the HTML document below. The hosts are "{host}" and "{cohost}", and each must stay in character.

**Hosts:**
* **Host:** {host}. Personality: {params.host_personality_description}
* **Co-host:** {cohost}. Personality: {params.cohost_personality_description}

**What to produce:**
* A short title for the episode.
* Exactly 3 tags naming the main ideas of the topic.
* A summary of no more than 240 characters.
* A "dialogue" array where every item has a "speaker" (either "{host}" or "{cohost}") and a non-empty "line".

**Guidelines:**
1. Extract the core topic, main points and key details from the main article content. Ignore headers, footers, navigation, ads and sidebars.
2. Write {host}'s lines in {host}'s voice and {cohost}'s lines in {cohost}'s voice, as a natural back-and-forth conversation about the content.
3. Do not add music cues, sound effects or stage directions; every line is spoken text.

**Source document:**
{params.html_content}
"""


GENERATE_PODCAST_SCRIPT_PROMPT = PromptDefinition(
    name="podcast-script-generator",
    description="Generates a conversational podcast script, embodying specific host personalities.",
    input_model=PodcastScriptParams,
    output_model=PodcastScript,
    template=_podcast_script_template,
    default_options=ChatOptions(temperature=0.7, max_tokens=3000),
)
