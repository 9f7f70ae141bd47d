from docker_reuse.cli import main

raise SystemExit(main())
