#!/usr/bin/env python3
"""
BioTune Main Application
Plays a biofeedback scenario through full therapeutic sessions and prints the
session summaries
"""
import argparse
import json
import signal
import sys

from biotune import create_session_manager
from biotune.config.profiles import list_scenarios
from biotune.core.music.parameter_space import AdaptationAlgorithm, GoalType, TherapeuticGoal
from biotune.utils.logging import init_logger


def handle_interrupt(sig, frame):
    print("\n[BioTune] KeyboardInterrupt received. Shutting down...")
    sys.exit(0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Run a simulated BioTune therapy session')
    parser.add_argument('--user', default='demo_user', help='User id to personalize for')
    parser.add_argument('--goal', default=GoalType.RELAXATION.value,
                        choices=[g.value for g in GoalType], help='Therapeutic goal')
    parser.add_argument('--intensity', type=float, default=70.0, help='Goal intensity (0-100)')
    parser.add_argument('--scenario', default='stress_reduction',
                        choices=list_scenarios() + ['none'], help='Scripted biofeedback scenario')
    parser.add_argument('--algorithm', default=None,
                        choices=[a.value for a in AdaptationAlgorithm],
                        help='Force an adaptation algorithm instead of the personalized choice')
    parser.add_argument('--duration', type=float, default=300.0,
                        help='Session length in simulated seconds')
    parser.add_argument('--sessions', type=int, default=1, help='Number of consecutive sessions')
    parser.add_argument('--realtime', action='store_true',
                        help='Tick in real time instead of stepping as fast as possible')
    parser.add_argument('--playlist', action='store_true', help='Print a playlist recommendation')
    parser.add_argument('--config', default=None, help='Path to a JSON config file')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--log-dir', default=None, help='Directory for log files')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    signal.signal(signal.SIGINT, handle_interrupt)

    biotune_logger = init_logger(log_dir=args.log_dir)
    biotune_logger.info("Starting BioTune simulation...")

    overrides = {'seed': args.seed}
    if not args.realtime:
        # No simulated latency when stepping
        overrides.update(recognition_delay=0.0, recommendation_delay_min=0.0,
                         recommendation_delay_max=0.0)
    session_manager = create_session_manager(args.config, **overrides)
    goal = TherapeuticGoal(GoalType(args.goal), args.intensity)
    scenario = None if args.scenario == 'none' else args.scenario

    try:
        for _ in range(max(1, args.sessions)):
            session_manager.start_session(args.user, goal, scenario=scenario,
                                          algorithm=args.algorithm)
            if args.realtime:
                session_manager.run(args.duration)
            else:
                ticks = int(args.duration / session_manager.config.tick_interval)
                session_manager.step(ticks)

            if args.playlist:
                recommendation = session_manager.recommend_playlist()
                print(json.dumps(recommendation.to_dict(), indent=2))

            summary = session_manager.end_session()
            print(json.dumps(summary, indent=2, default=str))
        session_manager.snapshot()
    except Exception:
        biotune_logger.exception("Error during simulation run")
        sys.exit(1)
    finally:
        biotune_logger.info("Shutting down BioTune...")
        session_manager.shutdown()


if __name__ == "__main__":
    main()
