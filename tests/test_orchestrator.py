import time
import uuid

import pytest

from generation.models import Audio, Image, Video
from generation.services.content_gen import ImagePrompt
from generation.services.orchestrator import GenerationOrchestrator, StageFailed, run_concurrently
from mediaforge.errors import UpstreamGenerationError

pytestmark = pytest.mark.django_db


def make_orchestrator(fake_gen, reporter, **kwargs):
    return GenerationOrchestrator(content_gen=fake_gen, reporter=reporter, **kwargs)


class TestFromScratch:
    """Scenario A: nothing provided, everything generated."""

    def test_generates_one_image_per_prompt(self, user, script, fake_gen, reporter):
        video = make_orchestrator(fake_gen, reporter).run(user, script.pk)

        assert fake_gen.count('generate_audio') == 1
        assert fake_gen.count('generate_image_prompts') == 1
        assert fake_gen.count('generate_image') == len(fake_gen.prompts) == 3
        assert video.status == Video.Status.COMPLETED
        assert reporter.checkpoints == [5, 10, 40, 70, 100]
        assert [s for s, _ in reporter.stages] == ['validating', 'generating', 'assembling']

    def test_narration_falls_back_to_prompt_text(self, user, script, fake_gen, reporter):
        video = make_orchestrator(fake_gen, reporter).run(user, script.pk)
        assert video.narration == [
            'The boat leaves the harbour.',
            'a storm over the sea',
            'The keeper lights the lamp.',
        ]

    def test_images_keep_prompt_order(self, user, script, fake_gen, reporter):
        make_orchestrator(fake_gen, reporter).run(user, script.pk)
        _, args = [c for c in fake_gen.calls if c[0] == 'generate_video'][0]
        assert args[0] == [
            'https://cdn.test/img/a-red-boat-at-dawn.png',
            'https://cdn.test/img/a-storm-over-the-sea.png',
            'https://cdn.test/img/a-lighthouse.png',
        ]
        assert Image.objects.filter(owner=user).count() == 3

    def test_one_empty_list_is_not_provided(self, user, script, fake_gen, reporter):
        make_orchestrator(fake_gen, reporter).run(user, script.pk, provided_scripts=['frag1'], provided_image_urls=[])
        assert fake_gen.count('generate_image_prompts') == 1
        assert reporter.stages[1] == ('generating', 'scratch')


class TestReuseProvided:
    """Scenario B: caller supplies fragments and image urls."""

    def test_only_audio_is_generated(self, user, script, fake_gen, reporter):
        video = make_orchestrator(fake_gen, reporter).run(
            user, script.pk, provided_scripts=['frag1', 'frag2'], provided_image_urls=['u1', 'u2'],
        )

        script.refresh_from_db()
        assert script.content == 'frag1 frag2'
        assert fake_gen.count('generate_audio') == 1
        assert fake_gen.count('generate_image_prompts') == 0
        assert fake_gen.count('generate_image') == 0
        assert reporter.checkpoints == [5, 10, 40, 70, 100]
        assert reporter.stages[1] == ('reusing_provided', 'reuse')
        assert video.narration == ['frag1', 'frag2']

    def test_audio_uses_reconciled_content(self, user, script, fake_gen, reporter):
        make_orchestrator(fake_gen, reporter).run(
            user, script.pk, provided_scripts=['frag1', 'frag2'], provided_image_urls=['u1', 'u2'],
        )
        _, args = [c for c in fake_gen.calls if c[0] == 'generate_audio'][0]
        assert args[0] == 'frag1 frag2'

    def test_matching_content_is_left_alone(self, user, script, fake_gen, reporter):
        script.content = 'frag1 frag2'
        script.save()
        before = script.updated_at
        make_orchestrator(fake_gen, reporter).run(
            user, script.pk, provided_scripts=['frag1', 'frag2'], provided_image_urls=['u1', 'u2'],
        )
        script.refresh_from_db()
        assert script.updated_at == before


class TestFailures:
    def test_missing_script_fails_validation(self, user, fake_gen, reporter):
        with pytest.raises(StageFailed) as exc:
            make_orchestrator(fake_gen, reporter).run(user, uuid.uuid4())
        assert exc.value.stage == 'validating'
        assert exc.value.code == 'not_found'
        assert fake_gen.calls == []

    def test_image_failure_aborts_but_keeps_audio(self, user, script, fake_gen, reporter):
        fake_gen.fail_on.add('generate_image')
        with pytest.raises(StageFailed) as exc:
            make_orchestrator(fake_gen, reporter).run(user, script.pk)

        assert exc.value.stage == 'generating'
        assert exc.value.code == 'upstream_generation_error'
        assert Audio.objects.filter(script=script).count() == 1
        assert Video.objects.count() == 0
        assert fake_gen.count('generate_video') == 0
        assert reporter.checkpoints == [5, 10, 40]

    def test_prompt_failure_aborts_before_images(self, user, script, fake_gen, reporter):
        fake_gen.fail_on.add('generate_image_prompts')
        with pytest.raises(StageFailed):
            make_orchestrator(fake_gen, reporter).run(user, script.pk)
        assert fake_gen.count('generate_image') == 0
        assert reporter.checkpoints == [5, 10]

    def test_no_prompts_is_an_upstream_error(self, user, script, fake_gen, reporter):
        fake_gen.prompts = []
        with pytest.raises(StageFailed) as exc:
            make_orchestrator(fake_gen, reporter).run(user, script.pk)
        assert isinstance(exc.value.error, UpstreamGenerationError)

    def test_assembly_failure_reports_stage(self, user, script, fake_gen, reporter):
        fake_gen.fail_on.add('generate_video')
        with pytest.raises(StageFailed) as exc:
            make_orchestrator(fake_gen, reporter).run(user, script.pk)
        assert exc.value.stage == 'assembling'
        assert reporter.checkpoints == [5, 10, 40, 70]

    def test_slow_audio_is_kept_when_prompts_fail_fast(self, user, script, fake_gen, reporter):
        fake_gen.fail_on.add('generate_image_prompts')
        fake_gen.delays['generate_audio'] = 0.2
        with pytest.raises(StageFailed):
            make_orchestrator(fake_gen, reporter).run(user, script.pk)
        assert fake_gen.count('generate_audio') == 1
        assert Audio.objects.filter(script=script).count() == 1

    def test_slow_sibling_images_are_kept_when_one_fails(self, user, script, fake_gen, reporter):
        fake_gen.fail_prompts.add('a storm over the sea')
        fake_gen.delays.update({'a red boat at dawn': 0.2, 'a lighthouse': 0.2})
        with pytest.raises(StageFailed) as exc:
            make_orchestrator(fake_gen, reporter).run(user, script.pk)
        assert exc.value.stage == 'generating'
        assert sorted(Image.objects.values_list('prompt', flat=True)) == ['a lighthouse', 'a red boat at dawn']
        assert Video.objects.count() == 0


class TestGenerateImages:
    def test_returns_urls_and_fragments(self, user, fake_gen, reporter):
        fake_gen.prompts = [ImagePrompt('a cat', 'Meet the cat.'), ImagePrompt('a dog', '')]
        result = make_orchestrator(fake_gen, reporter).generate_images('content', 'noir', user)
        assert result == {
            'image_urls': ['https://cdn.test/img/a-cat.png', 'https://cdn.test/img/a-dog.png'],
            'scripts': ['Meet the cat.', 'a dog'],
        }


class TestRunConcurrently:
    def test_results_delivered_to_caller(self):
        seen = []
        results = run_concurrently({'a': lambda: 1, 'b': lambda: 2}, 'test', on_result=lambda k, v: seen.append(k))
        assert results == {'a': 1, 'b': 2}
        assert sorted(seen) == ['a', 'b']

    def test_first_failure_propagates(self):
        def boom():
            raise UpstreamGenerationError('image', 'nope')

        with pytest.raises(UpstreamGenerationError):
            run_concurrently({'ok': lambda: 1, 'bad': boom}, 'test')

    def test_running_calls_are_delivered_after_a_failure(self):
        seen = []

        def boom():
            raise UpstreamGenerationError('image', 'nope')

        def slow():
            time.sleep(0.1)
            return 2

        with pytest.raises(UpstreamGenerationError):
            run_concurrently({'bad': boom, 'slow': slow}, 'test', on_result=lambda k, v: seen.append((k, v)))
        assert seen == [('slow', 2)]

    def test_stage_timeout(self):
        with pytest.raises(UpstreamGenerationError, match='timed out'):
            run_concurrently({'slow': lambda: time.sleep(1)}, 'generating', timeout=0.05)
