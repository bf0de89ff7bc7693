"""
Tests for the instruction templates and LLM wrappers.
"""
import os
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock

from lmstudio_ai.config import AppConfig
from lmstudio_ai.preferences import PreferenceResolver
from lmstudio_ai.prompt_templates import (
    BOOLEAN_EVALUATION_INSTRUCTIONS,
    IMAGE_DESCRIPTION_INSTRUCTIONS,
    SPELL_CHECK_INSTRUCTIONS,
    build_instructions,
    build_response_format,
)
from lmstudio_ai.text_transformations import (
    get_text_translation,
    invoke_llm_boolean_evaluation,
    invoke_llm_string_list_evaluation,
    invoke_llm_text_transformation,
    invoke_spell_check,
)


class TestPromptTemplates(unittest.TestCase):
    """Test cases for build_instructions."""

    def test_language_placeholder(self):
        instructions = build_instructions(IMAGE_DESCRIPTION_INSTRUCTIONS, language="Dutch")
        self.assertIn("Write all text values in Dutch.", instructions)
        self.assertNotIn("{language}", instructions)

    def test_template_without_values_left_alone(self):
        self.assertEqual(build_instructions(BOOLEAN_EVALUATION_INSTRUCTIONS), BOOLEAN_EVALUATION_INSTRUCTIONS)

    def test_response_format_types(self):
        response_format = build_response_format("answer", result=bool, items=[str], score=float)

        self.assertEqual(response_format["type"], "json_schema")
        schema = response_format["json_schema"]["schema"]
        self.assertEqual(schema["properties"]["result"], {"type": "boolean"})
        self.assertEqual(schema["properties"]["items"], {"type": "array", "items": {"type": "string"}})
        self.assertEqual(schema["properties"]["score"], {"type": "number"})
        self.assertEqual(schema["required"], ["result", "items", "score"])

    def test_extra_instructions_appended(self):
        instructions = build_instructions(SPELL_CHECK_INSTRUCTIONS, "  Use British spelling. ")
        self.assertTrue(instructions.endswith("\n\nUse British spelling."))
        self.assertEqual(build_instructions(SPELL_CHECK_INSTRUCTIONS, "   "), SPELL_CHECK_INSTRUCTIONS)


class TestTextTransformations(unittest.TestCase):
    """Test cases for the wrappers, with a mocked provider."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config = AppConfig(preferences_db_path=os.path.join(self.temp_dir, "prefs.db"))
        self.provider = MagicMock()
        self.provider.config = self.config

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_text_transformation_forwards_settings(self):
        self.provider.transform_text.return_value = "DONE"

        result = invoke_llm_text_transformation(self.provider, "text", "Shout", model="m", temperature=0.1)

        self.assertEqual(result, "DONE")
        self.provider.transform_text.assert_called_once_with("Shout", "text", model="m", temperature=0.1)

    def test_text_transformation_requires_instructions(self):
        with self.assertRaises(ValueError):
            invoke_llm_text_transformation(self.provider, "text", "  ")
        self.provider.transform_text.assert_not_called()

    def test_spell_check(self):
        self.provider.transform_text.return_value = "Fixed"
        self.assertEqual(invoke_spell_check(self.provider, "Fxied"), "Fixed")
        self.assertEqual(self.provider.transform_text.call_args[0][0], SPELL_CHECK_INSTRUCTIONS)

    def test_translation_explicit_language(self):
        self.provider.transform_text.return_value = "Hallo"

        self.assertEqual(get_text_translation(self.provider, "Hello", "dutch"), "Hallo")
        self.assertIn("into Dutch.", self.provider.transform_text.call_args[0][0])

    def test_translation_uses_language_preference(self):
        resolver = PreferenceResolver(config=self.config)
        resolver.assign("AIMetaLanguage", "German")
        self.provider.transform_text.return_value = "Hallo"

        get_text_translation(self.provider, "Hello", resolver=resolver)

        self.assertIn("into German.", self.provider.transform_text.call_args[0][0])

    def test_translation_invalid_language(self):
        with self.assertRaises(ValueError):
            get_text_translation(self.provider, "Hello", "Dothraki")

    def test_boolean_evaluation(self):
        answers = {
            '{"result": true}': True,
            '```json\n{"result": false}\n```': False,
            "Yes.": True,
            "false": False,
        }
        for answer, expected in answers.items():
            self.provider.transform_text.return_value = answer
            self.assertIs(invoke_llm_boolean_evaluation(self.provider, "The sky is blue"), expected, answer)

    def test_evaluations_request_typed_json(self):
        self.provider.transform_text.return_value = '{"result": true}'
        invoke_llm_boolean_evaluation(self.provider, "The sky is blue", temperature=0.0)

        kwargs = self.provider.transform_text.call_args[1]
        self.assertEqual(kwargs["temperature"], 0.0)
        schema = kwargs["response_format"]["json_schema"]["schema"]
        self.assertEqual(schema["properties"]["result"]["type"], "boolean")

        self.provider.transform_text.return_value = '{"items": []}'
        invoke_llm_string_list_evaluation(self.provider, "x")

        schema = self.provider.transform_text.call_args[1]["response_format"]["json_schema"]["schema"]
        self.assertEqual(schema["properties"]["items"]["items"]["type"], "string")

    def test_boolean_evaluation_unclear_answer(self):
        self.provider.transform_text.return_value = "It depends on the weather"
        with self.assertRaises(ValueError):
            invoke_llm_boolean_evaluation(self.provider, "The sky is blue")

    def test_string_list_evaluation(self):
        self.provider.transform_text.return_value = 'Here you go: ["red", " green ", "", "blue"]'
        self.assertEqual(
            invoke_llm_string_list_evaluation(self.provider, "Name colours"),
            ["red", "green", "blue"]
        )

    def test_string_list_wrapped_in_object(self):
        self.provider.transform_text.return_value = '{"items": ["a", "b"]}'
        self.assertEqual(invoke_llm_string_list_evaluation(self.provider, "x"), ["a", "b"])

    def test_string_list_without_list(self):
        self.provider.transform_text.return_value = "no idea"
        self.assertEqual(invoke_llm_string_list_evaluation(self.provider, "x"), [])


if __name__ == "__main__":
    unittest.main()
